"""HTTP retrieval of raw page markup."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import requests

from .base import FetchError

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "KnowledgeBrain-Bot/1.0 (Knowledge Ingestion)"
DEFAULT_TIMEOUT = 30.0

_HTML_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"
_XML_ACCEPT = "application/xml,text/xml;q=0.9,*/*;q=0.8"
_HTML_MEDIA_TYPES = ("text/html", "application/xhtml")


@dataclass(slots=True)
class HtmlFetcher:
    """Fetches pages with an identifying user agent and a request timeout.

    No retries happen here; callers decide whether a failed URL is skipped.
    Timeouts and transport failures surface as :class:`FetchError`, the same
    as bad statuses, so downstream skip-and-continue logic treats them alike.
    """

    user_agent: str = DEFAULT_USER_AGENT
    timeout: float = DEFAULT_TIMEOUT
    session: Any = None

    def fetch_html(self, url: str) -> str:
        """Return the HTML body of ``url``.

        Raises:
            FetchError: On non-2xx status, a non-HTML content type, timeout or
                transport failure.
        """
        response = self._get(url, accept=_HTML_ACCEPT)
        content_type = response.headers.get("Content-Type", "") or ""
        if not any(media in content_type.lower() for media in _HTML_MEDIA_TYPES):
            raise FetchError(url, f"Invalid content type: {content_type}", response.status_code)
        return response.text

    def fetch_text(self, url: str) -> str:
        """Return the body of ``url`` without content-type validation (sitemaps, feeds)."""
        return self._get(url, accept=_XML_ACCEPT).text

    def _get(self, url: str, *, accept: str) -> requests.Response:
        headers = {"User-Agent": self.user_agent, "Accept": accept}
        client = self.session or requests
        logger.debug("GET %s", url)
        try:
            response = client.get(
                url,
                headers=headers,
                timeout=self.timeout,
                allow_redirects=True,
            )
        except requests.Timeout as exc:
            raise FetchError(url, f"Request timed out after {self.timeout}s") from exc
        except requests.RequestException as exc:
            raise FetchError(url, f"Request failed: {exc}") from exc

        if not 200 <= response.status_code < 300:
            reason = getattr(response, "reason", "") or ""
            raise FetchError(url, f"HTTP {response.status_code}: {reason}".rstrip(": "), response.status_code)
        return response


def fetch_html(url: str, *, timeout: float = DEFAULT_TIMEOUT) -> str:
    """Fetch ``url`` with a default :class:`HtmlFetcher`."""
    return HtmlFetcher(timeout=timeout).fetch_html(url)


__all__ = ["DEFAULT_USER_AGENT", "HtmlFetcher", "fetch_html"]

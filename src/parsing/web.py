"""Readable-content extraction using trafilatura with a structural fallback."""

from __future__ import annotations

import json
import logging
from html import escape
from typing import Any

import trafilatura
from bs4 import BeautifulSoup

from .base import Document, PageMetadata
from .link_extractor import extract_images, extract_links, extract_meta_pairs, make_soup

logger = logging.getLogger(__name__)

# Minimum article length for the primary extraction to count as a hit
MIN_ARTICLE_LENGTH = 100
EXCERPT_LENGTH = 200

_MAIN_SELECTORS = 'main, article, [role="main"], .content, #content'
_HIDDEN_CLASS_PATTERNS = ("--hide", "hidden", "visually-hidden", "sr-only")


def extract_content(html: str, url: str) -> Document | None:
    """Convert raw markup into a :class:`Document`.

    The article body comes from trafilatura. When it finds no article (or one
    shorter than ``MIN_ARTICLE_LENGTH``), the first main-content region of the
    page is used instead, without image or link scans.

    Never raises: any parse failure is logged and returned as ``None``.
    """
    try:
        soup = make_soup(html)
        article = _extract_article(html, url)
        if article is None:
            logger.debug("No article found in %s, using structural fallback", url)
            return _extract_basic_content(soup, url)
        return _document_from_article(article, soup, url)
    except Exception as exc:
        logger.warning("Content extraction failed for %s: %s", url, exc)
        return None


def _extract_article(html: str, url: str) -> dict[str, Any] | None:
    normalized_html = _rewrite_key_value_tables(html)
    extracted = trafilatura.extract(
        normalized_html,
        url=url,
        output_format="json",
        with_metadata=True,
        include_comments=False,
    )
    if not extracted:
        return None

    payload = json.loads(extracted)
    text = (payload.get("text") or "").strip()
    if len(text) < MIN_ARTICLE_LENGTH:
        return None
    payload["text"] = text
    payload["html"] = _article_markup(normalized_html, url)
    return payload


def _article_markup(html: str, url: str) -> str | None:
    """Return the article body as trafilatura renders it in HTML."""
    markup = trafilatura.extract(
        html,
        url=url,
        output_format="html",
        include_comments=False,
        include_formatting=True,
        include_tables=True,
    )
    if not markup:
        return None
    soup = make_soup(markup)
    root = soup.body or soup
    return root.decode_contents().strip() or None


def _document_from_article(article: dict[str, Any], soup: BeautifulSoup, url: str) -> Document:
    metadata = PageMetadata.from_pairs(extract_meta_pairs(soup))
    text = article["text"]
    blocks = [block.strip() for block in text.splitlines() if block.strip()]

    title = article.get("title") or _page_title(soup)
    excerpt = article.get("excerpt") or metadata.description or (blocks[0] if blocks else "")

    return Document(
        url=url,
        title=title,
        content=article.get("html") or "\n".join(f"<p>{escape(block)}</p>" for block in blocks),
        text_content=text,
        excerpt=excerpt[:EXCERPT_LENGTH],
        byline=article.get("author") or None,
        site_name=article.get("source-hostname") or article.get("sitename") or metadata.og_site_name,
        published_time=metadata.published_time or article.get("date") or None,
        images=extract_images(soup, url),
        links=extract_links(soup, url),
        metadata=metadata,
    )


def _extract_basic_content(soup: BeautifulSoup, url: str) -> Document:
    metadata = PageMetadata.from_pairs(extract_meta_pairs(soup))
    title = _page_title(soup)

    for tag in soup.find_all(["script", "style", "noscript", "template"]):
        tag.decompose()

    region = soup.select_one(_MAIN_SELECTORS) or soup.body or soup
    text = _normalize_whitespace(region.get_text(" "))

    return Document(
        url=url,
        title=title,
        content=region.decode_contents(),
        text_content=text,
        excerpt=text[:EXCERPT_LENGTH],
        metadata=metadata,
    )


def _page_title(soup: BeautifulSoup) -> str:
    if soup.title is None:
        return ""
    return _normalize_whitespace(soup.title.get_text())


def _rewrite_key_value_tables(html: str) -> str:
    """Flatten two-column ``th``/``td`` tables into ``Label: value`` paragraphs.

    Key/value tables (contact boxes, company fact sheets) otherwise lose their
    pairing in plain-text extraction. Hidden elements are dropped first.
    """
    soup = make_soup(html)

    for hidden in soup.find_all(attrs={"aria-hidden": "true"}):
        hidden.decompose()

    for hidden in soup.find_all(class_=lambda c: c and any(
        pattern in c for pattern in _HIDDEN_CLASS_PATTERNS
    )):
        hidden.decompose()

    for table in soup.find_all("table"):
        rows = table.find_all("tr")
        if not rows or len(rows) > 20:
            continue

        pairs: list[tuple[str, list[str]]] = []
        for row in rows:
            cells = row.find_all(["th", "td"], recursive=False)
            if len(cells) != 2 or cells[0].name != "th" or cells[1].name != "td":
                pairs = []
                break

            label = _normalize_whitespace(cells[0].get_text(" ", strip=True))
            values = [
                _normalize_whitespace(token)
                for token in cells[1].stripped_strings
                if _normalize_whitespace(token)
            ]
            if not label or not values:
                pairs = []
                break
            pairs.append((label, values))

        if not pairs:
            continue

        wrapper = soup.new_tag("div", attrs={"class": "normalized-key-value"})
        for label, values in pairs:
            paragraph = soup.new_tag("p")
            paragraph.string = f"{label}: {', '.join(values)}"
            wrapper.append(paragraph)

        table.replace_with(wrapper)

    return str(soup)


def _normalize_whitespace(value: str) -> str:
    return " ".join(value.split())


__all__ = ["MIN_ARTICLE_LENGTH", "extract_content"]

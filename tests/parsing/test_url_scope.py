"""Unit tests for URL helpers."""

from __future__ import annotations

import pytest

from src.parsing.url_scope import (
    get_hostname,
    is_same_host,
    is_valid_http_url,
    normalize_url,
    parse_url,
    resolve_url,
    should_skip_href,
)


# =============================================================================
# parse_url Tests
# =============================================================================


class TestParseUrl:
    """Tests for URL parsing."""

    def test_parse_simple_url(self) -> None:
        """Parse a simple URL."""
        result = parse_url("https://example.com/path")

        assert result.scheme == "https"
        assert result.host == "example.com"
        assert result.port == ""
        assert result.path == "/path"

    def test_parse_url_with_port(self) -> None:
        """Parse URL with explicit port."""
        result = parse_url("https://example.com:8080/path")

        assert result.host == "example.com"
        assert result.port == "8080"

    def test_parse_url_strips_userinfo(self) -> None:
        """Credentials are not part of the host."""
        assert parse_url("https://user:pw@example.com/").host == "example.com"

    def test_parse_ipv6_host(self) -> None:
        """Bracketed IPv6 hosts keep their brackets and port."""
        result = parse_url("http://[::1]:8080/")

        assert result.host == "[::1]"
        assert result.port == "8080"

    def test_empty_path_becomes_slash(self) -> None:
        """A bare host gets the root path."""
        assert parse_url("https://EXAMPLE.com").path == "/"


# =============================================================================
# normalize_url Tests
# =============================================================================


class TestNormalizeUrl:
    """Tests for URL normalization."""

    def test_lowercases_and_drops_default_port(self) -> None:
        """Scheme/host are lowercased and :443 removed."""
        assert normalize_url("HTTPS://Example.COM:443/Docs") == "https://example.com/Docs"

    def test_keeps_non_default_port(self) -> None:
        """Explicit non-default ports survive."""
        assert normalize_url("http://example.com:8080/a") == "http://example.com:8080/a"

    def test_strips_fragment_by_default(self) -> None:
        """Fragments are removed unless asked to keep them."""
        assert normalize_url("https://example.com/a#b") == "https://example.com/a"
        assert normalize_url("https://example.com/a#b", strip_fragment=False) == "https://example.com/a#b"

    def test_optionally_strips_query(self) -> None:
        """Query strings are kept by default."""
        assert normalize_url("https://example.com/a?x=1") == "https://example.com/a?x=1"
        assert normalize_url("https://example.com/a?x=1", strip_query=True) == "https://example.com/a"


# =============================================================================
# Link helpers
# =============================================================================


class TestResolveUrl:
    """Tests for relative URL resolution."""

    def test_resolves_relative_path(self) -> None:
        """Relative hrefs resolve against the page URL."""
        assert resolve_url("https://example.com/blog/post", "../about") == "https://example.com/about"

    def test_absolute_href_wins(self) -> None:
        """Absolute hrefs are returned unchanged."""
        assert resolve_url("https://example.com/", "https://other.example/x") == "https://other.example/x"


class TestShouldSkipHref:
    """Tests for non-navigational href detection."""

    @pytest.mark.parametrize("href", ["", "   ", "#top", "javascript:void(0)", "JavaScript:alert(1)"])
    def test_skipped(self, href: str) -> None:
        """Empty, fragment-only and javascript: hrefs are skipped."""
        assert should_skip_href(href) is True

    @pytest.mark.parametrize("href", ["/about", "page.html#section", "https://example.com/"])
    def test_kept(self, href: str) -> None:
        """Navigational hrefs are kept."""
        assert should_skip_href(href) is False


class TestHostChecks:
    """Tests for URL validity and same-host comparison."""

    def test_valid_http_urls(self) -> None:
        """Only absolute http(s) URLs are valid."""
        assert is_valid_http_url("https://example.com/")
        assert is_valid_http_url("http://example.com")
        assert not is_valid_http_url("ftp://example.com/")
        assert not is_valid_http_url("/relative")
        assert not is_valid_http_url("mailto:a@example.com")

    def test_same_host(self) -> None:
        """Hosts must match exactly, ignoring case."""
        assert is_same_host("https://Example.com/a", "https://example.com/b")
        assert not is_same_host("https://blog.example.com/", "https://example.com/")
        assert not is_same_host("mailto:a@example.com", "https://example.com/")

    def test_get_hostname(self) -> None:
        """Hostnames exclude ports."""
        assert get_hostname("https://example.com:8443/x") == "example.com"

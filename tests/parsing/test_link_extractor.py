"""Tests for link, image and meta scans."""

from __future__ import annotations

from src.parsing.link_extractor import (
    extract_images,
    extract_links,
    extract_meta_pairs,
    make_soup,
)


class TestExtractLinks:
    """Tests for extract_links."""

    def test_resolves_and_dedupes_in_order(self) -> None:
        """Links are absolute, unique and in document order."""
        soup = make_soup(
            """
            <a href="/b">B</a>
            <a href="https://example.com/a">A</a>
            <a href="/b">B again</a>
            <a href="c.html">C</a>
            """
        )

        assert extract_links(soup, "https://example.com/dir/page") == [
            "https://example.com/b",
            "https://example.com/a",
            "https://example.com/dir/c.html",
        ]

    def test_skips_fragment_and_javascript_links(self) -> None:
        """Fragment-only and javascript: links are excluded."""
        soup = make_soup('<a href="#x">x</a><a href="javascript:go()">go</a><a>no href</a><a href="/ok">ok</a>')

        assert extract_links(soup, "https://example.com/") == ["https://example.com/ok"]

    def test_honours_base_href(self) -> None:
        """A <base href> changes the resolution root."""
        soup = make_soup('<head><base href="https://cdn.example.com/root/"></head><a href="page">p</a>')

        assert extract_links(soup, "https://example.com/") == ["https://cdn.example.com/root/page"]

    def test_limit(self) -> None:
        """At most ``limit`` links are returned."""
        soup = make_soup("".join(f'<a href="/{n}">{n}</a>' for n in range(10)))

        assert len(extract_links(soup, "https://example.com/", limit=3)) == 3


class TestExtractImages:
    """Tests for extract_images."""

    def test_resolves_sources(self) -> None:
        """Image sources are resolved against the page URL."""
        soup = make_soup('<img src="/logo.png"><img src=""><img alt="none"><img src="https://img.example/x.jpg">')

        assert extract_images(soup, "https://example.com/a/") == [
            "https://example.com/logo.png",
            "https://img.example/x.jpg",
        ]

    def test_default_cap_is_twenty(self) -> None:
        """Only the first 20 images are kept."""
        soup = make_soup("".join(f'<img src="/{n}.png">' for n in range(25)))

        images = extract_images(soup, "https://example.com/")

        assert len(images) == 20
        assert images[-1] == "https://example.com/19.png"


class TestExtractMetaPairs:
    """Tests for extract_meta_pairs."""

    def test_name_and_property(self) -> None:
        """Both name= and property= metas are collected with trimmed content."""
        soup = make_soup(
            """
            <meta name="description" content=" A company ">
            <meta property="og:site_name" content="Acme">
            <meta charset="utf-8">
            <meta name="empty" content="">
            """
        )

        assert extract_meta_pairs(soup) == [("description", "A company"), ("og:site_name", "Acme")]

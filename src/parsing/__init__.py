"""Page fetching, readable-content extraction and sitemap parsing."""

from .base import Document, FetchError, PageMetadata, ParserError
from .fetch import HtmlFetcher, fetch_html
from .sitemap import SitemapEntry, parse_sitemap
from .web import extract_content

__all__ = [
    "Document",
    "FetchError",
    "HtmlFetcher",
    "PageMetadata",
    "ParserError",
    "SitemapEntry",
    "extract_content",
    "fetch_html",
    "parse_sitemap",
]

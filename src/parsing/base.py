"""Core data types for fetched and extracted web pages."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping


class ParserError(RuntimeError):
    """Base error for the fetching and parsing layer."""


class FetchError(ParserError):
    """Raised when a page cannot be retrieved as HTML."""

    def __init__(self, url: str, message: str, status_code: int | None = None) -> None:
        super().__init__(f"{url}: {message}")
        self.url = url
        self.status_code = status_code


# <meta> name/property -> PageMetadata attribute
_KNOWN_META_FIELDS: dict[str, str] = {
    "og:site_name": "og_site_name",
    "og:description": "og_description",
    "og:title": "og_title",
    "description": "description",
    "author": "author",
    "keywords": "keywords",
    "article:published_time": "published_time",
}


@dataclass(slots=True)
class PageMetadata:
    """Metadata gathered from ``<meta>`` tags.

    Well-known fields are exposed as attributes; everything else lands in
    ``extra`` keyed by the original name or property.
    """

    og_site_name: str | None = None
    og_description: str | None = None
    og_title: str | None = None
    description: str | None = None
    author: str | None = None
    keywords: str | None = None
    published_time: str | None = None
    extra: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_pairs(cls, pairs: Iterable[tuple[str, str]]) -> "PageMetadata":
        """Build metadata from ``(name, content)`` pairs; later pairs win."""
        metadata = cls()
        for name, content in pairs:
            if not name or not content:
                continue
            attr = _KNOWN_META_FIELDS.get(name.strip().lower())
            if attr is not None:
                setattr(metadata, attr, content)
            else:
                metadata.extra[name] = content
        return metadata

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "PageMetadata":
        return cls.from_pairs((str(k), str(v)) for k, v in payload.items() if v is not None)

    def get(self, name: str, default: str | None = None) -> str | None:
        """Look up a value by its ``<meta>`` name or property."""
        attr = _KNOWN_META_FIELDS.get(name.strip().lower())
        if attr is not None:
            value = getattr(self, attr)
            return value if value is not None else default
        return self.extra.get(name, default)

    def to_dict(self) -> dict[str, str]:
        """Flatten back into ``<meta>`` name -> content form."""
        payload: dict[str, str] = {}
        for name, attr in _KNOWN_META_FIELDS.items():
            value = getattr(self, attr)
            if value is not None:
                payload[name] = value
        payload.update(self.extra)
        return payload

    def __bool__(self) -> bool:
        return bool(self.to_dict())


@dataclass(slots=True)
class Document:
    """Normalized readable content of a single web page."""

    url: str
    title: str
    content: str
    text_content: str
    excerpt: str
    byline: str | None = None
    site_name: str | None = None
    published_time: str | None = None
    images: list[str] = field(default_factory=list)
    links: list[str] = field(default_factory=list)
    metadata: PageMetadata = field(default_factory=PageMetadata)

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "title": self.title,
            "content": self.content,
            "text_content": self.text_content,
            "excerpt": self.excerpt,
            "byline": self.byline,
            "site_name": self.site_name,
            "published_time": self.published_time,
            "images": list(self.images),
            "links": list(self.links),
            "metadata": self.metadata.to_dict(),
        }


__all__ = ["Document", "FetchError", "PageMetadata", "ParserError"]

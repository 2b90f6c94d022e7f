"""Data models for the automotive briefing bot."""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class Source:
    """A configured news feed publisher."""

    id: str
    name: str
    color: str
    feed_url: str
    homepage: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Source":
        """Build a Source from a registry record (camelCase or snake_case keys)."""
        feed_url = data.get("feedUrl") or data.get("feed_url")
        missing = [
            key
            for key, value in (
                ("id", data.get("id")),
                ("name", data.get("name")),
                ("feedUrl", feed_url),
            )
            if not value
        ]
        if missing:
            raise ValueError(f"Source record missing fields: {', '.join(missing)}")

        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            color=str(data.get("color", "")),
            feed_url=str(feed_url),
            homepage=str(data.get("homepage", "")),
        )


@dataclass(frozen=True)
class Article:
    """Canonical record normalized from one feed item."""

    id: str
    title: str
    summary: str
    link: str
    source_id: str
    source_name: str
    source_color: str
    homepage: str
    published_at: str  # ISO-8601, UTC

    def to_dict(self) -> dict[str, str]:
        """Render the article in the shape served to API clients."""
        return {
            "id": self.id,
            "title": self.title,
            "summary": self.summary,
            "link": self.link,
            "sourceId": self.source_id,
            "sourceName": self.source_name,
            "sourceColor": self.source_color,
            "homepage": self.homepage,
            "publishedAt": self.published_at,
        }


@dataclass
class DeliveryResult:
    """Outcome of a single Telegram delivery attempt."""

    ok: bool
    error: str | None = None
    status_code: int | None = None

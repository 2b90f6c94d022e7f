"""Registry of automotive news sources."""

import json
from pathlib import Path

from .models import Source


class ConfigurationError(ValueError):
    """Raised when the source registry cannot be used."""


CAR_SOURCES: tuple[Source, ...] = (
    Source(
        id="autoblog",
        name="Autoblog",
        color="#0A84FF",
        feed_url="https://www.autoblog.com/rss.xml",
        homepage="https://www.autoblog.com",
    ),
    Source(
        id="motor1",
        name="Motor1",
        color="#E10600",
        feed_url="https://www.motor1.com/rss/news/all/",
        homepage="https://www.motor1.com",
    ),
    Source(
        id="caranddriver",
        name="Car and Driver",
        color="#111827",
        feed_url="https://www.caranddriver.com/rss/all.xml/",
        homepage="https://www.caranddriver.com",
    ),
    Source(
        id="jalopnik",
        name="Jalopnik",
        color="#F59E0B",
        feed_url="https://jalopnik.com/rss",
        homepage="https://jalopnik.com",
    ),
    Source(
        id="electrek",
        name="Electrek",
        color="#22C55E",
        feed_url="https://electrek.co/feed/",
        homepage="https://electrek.co",
    ),
)


def load_sources(path: str | Path) -> tuple[Source, ...]:
    """Load enabled sources from a JSON registry file.

    The file holds ``{"sources": [{id, name, color, feedUrl, homepage}]}``;
    entries with ``"enabled": false`` are skipped.

    Raises:
        ConfigurationError: If the file is missing, malformed, holds duplicate
            ids, or has no enabled sources.
    """
    sources_file = Path(path)
    if not sources_file.exists():
        raise ConfigurationError(f"Sources file not found: {sources_file}")

    try:
        with open(sources_file, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in sources file: {e}") from e

    records = data.get("sources", []) if isinstance(data, dict) else []
    try:
        sources = tuple(
            Source.from_dict(record)
            for record in records
            if isinstance(record, dict) and record.get("enabled", True)
        )
    except ValueError as e:
        raise ConfigurationError(f"Invalid source in {sources_file}: {e}") from e

    validate_sources(sources)
    return sources


def validate_sources(sources: tuple[Source, ...] | list[Source]) -> None:
    """Ensure the registry is non-empty and ids are unique."""
    if not sources:
        raise ConfigurationError("No feed sources registered")

    seen: set[str] = set()
    for source in sources:
        if source.id in seen:
            raise ConfigurationError(f"Duplicate source id: {source.id}")
        seen.add(source.id)

"""RSS Feed Processing module for the automotive briefing bot."""

import hashlib
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

import feedparser
import requests
from requests.adapters import HTTPAdapter
from bs4 import BeautifulSoup
from dateutil import parser as date_parser

from .logging_config import create_execution_logger
from .models import Article, Source

ELLIPSIS = "…"

# Richest text first: full bodies, then short blurbs.
CONTENT_FIELDS = ("content", "content:encoded")
SUMMARY_FIELDS = ("summary", "description", "contentSnippet")
DATE_FIELDS = ("published", "updated", "pubDate", "isoDate")
PARSED_DATE_FIELDS = ("published_parsed", "updated_parsed")

# RFC 822 zone names, which dateutil does not resolve on its own.
RFC822_TZINFOS = {
    "UT": 0,
    "GMT": 0,
    "Z": 0,
    "EST": -5 * 3600,
    "EDT": -4 * 3600,
    "CST": -6 * 3600,
    "CDT": -5 * 3600,
    "MST": -7 * 3600,
    "MDT": -6 * 3600,
    "PST": -8 * 3600,
    "PDT": -7 * 3600,
}


def generate_article_id(link: str) -> str:
    """Derive a stable article identifier from its link."""
    return hashlib.sha256(link.strip().encode("utf-8")).hexdigest()


def get_field(raw_item: Any, name: str) -> Any:
    """Read an optional field from a mapping or attribute-style feed entry."""
    if isinstance(raw_item, Mapping):
        return raw_item.get(name)
    return getattr(raw_item, name, None)


def _text_value(value: Any) -> str:
    """Extract a string from the shapes feedparser uses for text fields."""
    if isinstance(value, str):
        return value
    if isinstance(value, Mapping):
        return _text_value(value.get("value"))
    if isinstance(value, (list, tuple)):
        for part in value:
            text = _text_value(part)
            if text.strip():
                return text
    return ""


class FeedProcessor:
    """Handles RSS/Atom feed fetching and article normalization."""

    def __init__(
        self,
        timeout: float = 8.0,
        summary_max_length: int = 280,
        execution_id: str | None = None,
        max_workers: int = 8,
    ):
        """Initialize FeedProcessor with configuration.

        Args:
            timeout: HTTP request timeout in seconds
            summary_max_length: Maximum summary length, ellipsis included
            execution_id: Execution ID for logging context
            max_workers: Threads that may share the session concurrently
        """
        self.timeout = timeout
        self.summary_max_length = summary_max_length
        self.logger = create_execution_logger("feed_processor", execution_id)
        self.session = requests.Session()
        self.session.headers.update(
            {
                "User-Agent": "Car-Briefing-Bot/1.0 (Automotive news aggregator)",
                "Accept": "application/rss+xml, application/atom+xml, application/xml;q=0.9, */*;q=0.8",
            }
        )
        # Pool sized so every worker thread can hold its own connection
        adapter = HTTPAdapter(pool_maxsize=max(max_workers, 1))
        self.session.mount("https://", adapter)
        self.session.mount("http://", adapter)

    def fetch_source(self, source: Source) -> list[Article]:
        """Fetch and normalize one source, absorbing every failure.

        Returns:
            The source's articles, or an empty list when the fetch failed
        """
        try:
            articles = self.parse_feed(source)
        except Exception as e:
            self.logger.error(
                f"Failed to process source {source.id}: {e}",
                source_id=source.id,
                feed_url=source.feed_url,
                error=str(e),
                error_type=type(e).__name__,
            )
            return []

        self.logger.log_source_processing(source.id, source.feed_url, len(articles))
        return articles

    def fetch_feed_content(self, source: Source) -> bytes:
        """Download the raw feed payload for a source.

        Raises:
            requests.RequestException: On network errors, timeouts and non-2xx status
        """
        self.logger.debug(
            "Downloading feed content", source_id=source.id, feed_url=source.feed_url
        )
        response = self.session.get(source.feed_url, timeout=self.timeout)
        response.raise_for_status()
        self.logger.debug(
            "Feed downloaded successfully",
            source_id=source.id,
            status_code=response.status_code,
            content_length=len(response.content),
        )
        return response.content

    def parse_feed(self, source: Source) -> list[Article]:
        """Download and parse a single source into articles.

        Raises:
            requests.RequestException: If feed download fails
        """
        content = self.fetch_feed_content(source)
        return self.parse_content(content, source)

    def parse_content(self, content: bytes, source: Source) -> list[Article]:
        """Parse a raw RSS/Atom payload and normalize its entries."""
        feed = feedparser.parse(content)

        if feed.bozo and hasattr(feed, "bozo_exception"):
            self.logger.warning(
                f"Feed parsing warning for {source.id}: {feed.bozo_exception}",
                source_id=source.id,
                feed_url=source.feed_url,
                bozo_exception=str(feed.bozo_exception),
            )

        articles = []
        for entry in feed.entries:
            article = self.normalize_item(entry, source)
            if article is not None:
                articles.append(article)

        self.logger.debug(
            "Parsed feed",
            source_id=source.id,
            articles_count=len(articles),
            total_entries=len(feed.entries),
        )
        return articles

    def normalize_item(self, raw_item: Any, source: Source) -> Article | None:
        """Normalize a raw feed entry into an Article.

        Args:
            raw_item: Raw feed entry (feedparser entry, dict or object)
            source: Source the entry came from

        Returns:
            The Article, or None when the entry lacks a title or link or
            cannot be read at all
        """
        try:
            return self._build_article(raw_item, source)
        except Exception as e:
            self.logger.warning(
                f"Failed to normalize entry from {source.id}: {e}",
                source_id=source.id,
                feed_url=source.feed_url,
                error=str(e),
            )
            return None

    def _build_article(self, raw_item: Any, source: Source) -> Article | None:
        title = self.clean_html_content(_text_value(get_field(raw_item, "title")))
        link = _text_value(get_field(raw_item, "link")).strip()
        if not title or not link:
            return None

        return Article(
            id=generate_article_id(link),
            title=title,
            summary=self.truncate(self.extract_text(raw_item)),
            link=link,
            source_id=source.id,
            source_name=source.name,
            source_color=source.color,
            homepage=source.homepage,
            published_at=self.parse_published(raw_item).isoformat(),
        )

    def extract_text(self, raw_item: Any) -> str:
        """Return the richest text field on the entry, as plain text."""
        for field in CONTENT_FIELDS + SUMMARY_FIELDS:
            text = self.clean_html_content(_text_value(get_field(raw_item, field)))
            if text:
                return text
        return ""

    def parse_published(self, raw_item: Any) -> datetime:
        """Parse the entry's publication date, falling back to now (UTC)."""
        for field in DATE_FIELDS:
            value = get_field(raw_item, field)
            if not isinstance(value, str) or not value.strip():
                continue
            try:
                published = date_parser.parse(value, tzinfos=RFC822_TZINFOS)
                if published.tzinfo is None:
                    published = published.replace(tzinfo=UTC)
                return published.astimezone(UTC)
            except (ValueError, TypeError, OverflowError):
                continue

        for field in PARSED_DATE_FIELDS:
            value = get_field(raw_item, field)
            try:
                return datetime(*value[:6], tzinfo=UTC)
            except (TypeError, ValueError, IndexError, OverflowError):
                continue

        return datetime.now(UTC)

    def truncate(self, text: str) -> str:
        """Cut text to the configured summary length with an ellipsis."""
        if len(text) <= self.summary_max_length:
            return text
        return text[: self.summary_max_length - 1].rstrip() + ELLIPSIS

    def clean_html_content(self, content: str) -> str:
        """Remove HTML tags from content and normalize whitespace.

        Args:
            content: Raw content that may contain HTML

        Returns:
            Clean text content without HTML tags
        """
        if not content:
            return ""

        if "<" not in content and ">" not in content:
            return " ".join(content.split())

        soup = BeautifulSoup(content, "html.parser")

        for element in soup(["script", "style"]):
            element.decompose()

        text = soup.get_text(separator=" ")

        return " ".join(text.split())

"""Concurrent aggregation of articles across all registered sources."""

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Any

from .config import Config, FetchConfig
from .logging_config import create_execution_logger
from .models import Article, Source
from .rss import FeedProcessor
from .sources import validate_sources

DEFAULT_LIMIT = 8
MIN_LIMIT = 1
MAX_LIMIT = 20


def clamp_limit(
    value: Any,
    default: int = DEFAULT_LIMIT,
    minimum: int = MIN_LIMIT,
    maximum: int = MAX_LIMIT,
) -> int:
    """Coerce a caller-supplied limit into the accepted range.

    Missing or non-numeric values fall back to ``default``.
    """
    if value is None or isinstance(value, bool):
        return default
    try:
        limit = int(str(value).strip())
    except ValueError:
        return default
    return max(minimum, min(limit, maximum))


def _published_key(article: Article) -> datetime:
    return datetime.fromisoformat(article.published_at)


def deduplicate(articles: list[Article]) -> list[Article]:
    """Drop articles whose id was already seen, keeping the first."""
    seen: set[str] = set()
    unique = []
    for article in articles:
        if article.id in seen:
            continue
        seen.add(article.id)
        unique.append(article)
    return unique


class FeedAggregator:
    """Fan out one fetch per source, then merge, dedupe, sort and limit."""

    def __init__(
        self,
        sources: tuple[Source, ...] | list[Source],
        fetch_config: FetchConfig | None = None,
        processor: FeedProcessor | None = None,
        execution_id: str | None = None,
    ):
        validate_sources(sources)
        self.sources = tuple(sources)
        self.fetch_config = fetch_config or FetchConfig()
        self.processor = processor or FeedProcessor(
            timeout=self.fetch_config.timeout,
            summary_max_length=self.fetch_config.summary_max_length,
            execution_id=execution_id,
            max_workers=self.fetch_config.max_workers,
        )
        self.logger = create_execution_logger("aggregator", execution_id)
        self.last_run_metrics: dict[str, int] = {}

    def resolve_limit(self, value: Any) -> int:
        """Clamp a caller-supplied limit using the configured bounds."""
        maximum = self.fetch_config.max_limit
        return clamp_limit(
            value,
            default=min(self.fetch_config.default_limit, maximum),
            maximum=maximum,
        )

    def aggregate(self, limit: int = DEFAULT_LIMIT) -> list[Article]:
        """Run one aggregation over every source.

        Args:
            limit: Maximum number of articles to return (positive)

        Returns:
            Newest-first articles, at most ``limit`` of them
        """
        self.logger.log_execution_start(source_count=len(self.sources), limit=limit)

        workers = min(len(self.sources), self.fetch_config.max_workers)
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [
                executor.submit(self.processor.fetch_source, source)
                for source in self.sources
            ]
            # Registry order, not completion order
            per_source = [
                self._settle(future, source)
                for future, source in zip(futures, self.sources)
            ]

        merged = [article for articles in per_source for article in articles]
        unique = deduplicate(merged)
        unique.sort(key=_published_key, reverse=True)
        result = unique[:limit]

        self.last_run_metrics = {
            "sources_total": len(self.sources),
            "sources_empty": sum(1 for articles in per_source if not articles),
            "articles_found": len(merged),
            "articles_deduplicated": len(merged) - len(unique),
            "articles_returned": len(result),
        }
        self.logger.log_metrics(self.last_run_metrics)
        self.logger.log_execution_end(success=True, articles_returned=len(result))
        return result

    def _settle(self, future, source: Source) -> list[Article]:
        try:
            return future.result()
        except Exception as e:
            self.logger.error(
                f"Source task for {source.id} raised: {e}",
                source_id=source.id,
                error=str(e),
            )
            return []


def fetch_articles(
    limit: Any = None,
    config: Config | None = None,
    execution_id: str | None = None,
) -> list[Article]:
    """Aggregate the latest articles from the configured registry."""
    aggregator = build_aggregator(config, execution_id=execution_id)
    return aggregator.aggregate(aggregator.resolve_limit(limit))


def build_aggregator(
    config: Config | None = None, execution_id: str | None = None
) -> FeedAggregator:
    """Create an aggregator over the configured source registry."""
    config = config or Config()
    return FeedAggregator(
        config.get_sources(),
        fetch_config=config.get_fetch_config(),
        execution_id=execution_id,
    )

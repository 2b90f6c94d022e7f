"""Unit tests for the feed aggregator."""

import threading
from unittest.mock import Mock, patch

import pytest
import requests

from car_briefing.aggregator import (
    FeedAggregator,
    clamp_limit,
    deduplicate,
    fetch_articles,
)
from car_briefing.config import Config, FetchConfig
from car_briefing.models import Article, Source
from car_briefing.rss import FeedProcessor, generate_article_id
from car_briefing.sources import CAR_SOURCES, ConfigurationError

SOURCES = (
    Source("alpha", "Alpha Motors", "#111", "https://alpha.test/feed", "https://alpha.test"),
    Source("beta", "Beta Wheels", "#222", "https://beta.test/feed", "https://beta.test"),
    Source("gamma", "Gamma Drive", "#333", "https://gamma.test/feed", "https://gamma.test"),
)


def make_article(source: Source, slug: str, published_at: str, link: str | None = None) -> Article:
    link = link or f"{source.homepage}/{slug}"
    return Article(
        id=generate_article_id(link),
        title=slug.replace("-", " ").title(),
        summary="",
        link=link,
        source_id=source.id,
        source_name=source.name,
        source_color=source.color,
        homepage=source.homepage,
        published_at=published_at,
    )


def fake_processor(results: dict[str, object]) -> Mock:
    """Processor whose fetch_source returns (or raises) per source id."""

    def fetch_source(source):
        outcome = results.get(source.id, [])
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    processor = Mock(spec=FeedProcessor)
    processor.fetch_source.side_effect = fetch_source
    return processor


class TestFeedAggregatorUnit:
    """Unit tests for FeedAggregator."""

    def test_merges_sorts_and_limits(self):
        alpha, beta, gamma = SOURCES
        processor = fake_processor(
            {
                "alpha": [
                    make_article(alpha, "old-news", "2024-01-01T08:00:00+00:00"),
                    make_article(alpha, "fresh-news", "2024-01-03T08:00:00+00:00"),
                ],
                "beta": [make_article(beta, "middle", "2024-01-02T08:00:00+00:00")],
                "gamma": [make_article(gamma, "newest", "2024-01-04T08:00:00+00:00")],
            }
        )
        aggregator = FeedAggregator(SOURCES, processor=processor)

        result = aggregator.aggregate(limit=3)

        assert [a.title for a in result] == ["Newest", "Fresh News", "Middle"]
        assert processor.fetch_source.call_count == len(SOURCES)

    def test_default_limit_is_eight(self):
        alpha = SOURCES[0]
        articles = [
            make_article(alpha, f"story-{i}", f"2024-01-{i + 1:02d}T00:00:00+00:00")
            for i in range(12)
        ]
        aggregator = FeedAggregator(SOURCES, processor=fake_processor({"alpha": articles}))

        assert len(aggregator.aggregate()) == 8

    def test_duplicate_links_collapse_first_wins(self):
        alpha, beta, _ = SOURCES
        shared = "https://syndicated.test/story"
        processor = fake_processor(
            {
                "alpha": [make_article(alpha, "shared", "2024-01-01T00:00:00+00:00", shared)],
                "beta": [make_article(beta, "shared", "2024-01-02T00:00:00+00:00", shared)],
            }
        )
        aggregator = FeedAggregator(SOURCES, processor=processor)

        result = aggregator.aggregate(limit=10)

        assert len(result) == 1
        assert result[0].source_id == "alpha"
        assert aggregator.last_run_metrics["articles_deduplicated"] == 1

    def test_failing_source_does_not_block_others(self):
        alpha, _, gamma = SOURCES
        processor = fake_processor(
            {
                "alpha": [make_article(alpha, "a", "2024-01-01T00:00:00+00:00")],
                "beta": RuntimeError("boom"),
                "gamma": [make_article(gamma, "g", "2024-01-02T00:00:00+00:00")],
            }
        )
        aggregator = FeedAggregator(SOURCES, processor=processor)

        result = aggregator.aggregate(limit=10)

        assert {a.source_id for a in result} == {"alpha", "gamma"}

    def test_network_failure_with_real_processor(self):
        alpha, beta, _ = SOURCES
        feed = (
            b"<?xml version='1.0'?><rss version='2.0'><channel><title>t</title>"
            b"<item><title>Working story</title><link>https://alpha.test/ok</link>"
            b"<pubDate>Mon, 01 Jan 2024 10:00:00 GMT</pubDate></item></channel></rss>"
        )

        def get(url, timeout):
            if url == beta.feed_url:
                raise requests.Timeout("too slow")
            if url == alpha.feed_url:
                return Mock(status_code=200, content=feed)
            response = Mock(status_code=404, content=b"")
            response.raise_for_status.side_effect = requests.HTTPError("404")
            return response

        processor = FeedProcessor(timeout=1)
        processor.session.get = Mock(side_effect=get)
        aggregator = FeedAggregator(SOURCES, processor=processor)

        result = aggregator.aggregate(limit=5)

        assert [a.title for a in result] == ["Working story"]
        assert aggregator.last_run_metrics["sources_empty"] == 2

    def test_equal_timestamps_keep_registry_order(self):
        alpha, beta, gamma = SOURCES
        stamp = "2024-05-01T12:00:00+00:00"
        processor = fake_processor(
            {
                "alpha": [make_article(alpha, "first", stamp)],
                "beta": [make_article(beta, "second", stamp)],
                "gamma": [make_article(gamma, "third", stamp)],
            }
        )

        result = FeedAggregator(SOURCES, processor=processor).aggregate(limit=3)

        assert [a.source_id for a in result] == ["alpha", "beta", "gamma"]

    def test_order_is_independent_of_completion_order(self):
        alpha, beta, _ = SOURCES
        slow_done = threading.Event()

        def fetch_source(source):
            if source.id == "alpha":
                slow_done.wait(timeout=0.2)
                return [make_article(alpha, "slow", "2024-01-01T00:00:00+00:00")]
            if source.id == "beta":
                return [make_article(beta, "fast", "2024-01-02T00:00:00+00:00")]
            return []

        processor = Mock(spec=FeedProcessor)
        processor.fetch_source.side_effect = fetch_source

        result = FeedAggregator(SOURCES, processor=processor).aggregate(limit=5)

        assert [a.title for a in result] == ["Fast", "Slow"]

    def test_all_sources_empty_returns_empty_list(self):
        aggregator = FeedAggregator(SOURCES, processor=fake_processor({}))
        assert aggregator.aggregate(limit=5) == []
        assert aggregator.last_run_metrics["articles_returned"] == 0

    def test_empty_registry_is_a_configuration_error(self):
        with pytest.raises(ConfigurationError):
            FeedAggregator(())

    def test_processor_built_from_fetch_config(self):
        aggregator = FeedAggregator(
            SOURCES,
            fetch_config=FetchConfig(timeout=3.5, summary_max_length=100, max_workers=3),
        )
        assert aggregator.processor.timeout == 3.5
        assert aggregator.processor.summary_max_length == 100
        adapter = aggregator.processor.session.get_adapter(SOURCES[0].feed_url)
        assert adapter.poolmanager.connection_pool_kw["maxsize"] == 3

    def test_resolve_limit_uses_configured_bounds(self):
        aggregator = FeedAggregator(
            SOURCES,
            fetch_config=FetchConfig(default_limit=5, max_limit=10),
            processor=fake_processor({}),
        )
        assert aggregator.resolve_limit(None) == 5
        assert aggregator.resolve_limit("50") == 10
        assert aggregator.resolve_limit(0) == 1


class TestClampLimitUnit:
    """Unit tests for limit clamping at the request boundary."""

    @pytest.mark.parametrize(
        "value, expected",
        [
            (None, 8),
            ("", 8),
            ("abc", 8),
            ("5", 5),
            (5, 5),
            (" 12 ", 12),
            (0, 1),
            (-3, 1),
            (21, 20),
            ("1000", 20),
            (True, 8),
        ],
    )
    def test_clamp_limit(self, value, expected):
        assert clamp_limit(value) == expected


class TestDeduplicateUnit:
    def test_keeps_first_occurrence(self):
        alpha, beta, _ = SOURCES
        first = make_article(alpha, "x", "2024-01-01T00:00:00+00:00", "https://same.test/x")
        second = make_article(beta, "x", "2024-01-02T00:00:00+00:00", "https://same.test/x")
        other = make_article(beta, "y", "2024-01-02T00:00:00+00:00")

        assert deduplicate([first, other, second]) == [first, other]


class TestFetchArticlesUnit:
    """Unit tests for the fetch_articles entry point."""

    def test_uses_configured_registry_and_clamps(self):
        config = Config()
        articles = [
            make_article(CAR_SOURCES[0], f"s-{i}", f"2024-02-{i + 1:02d}T00:00:00+00:00")
            for i in range(25)
        ]

        def fetch_source(self, source):
            return articles if source.id == CAR_SOURCES[0].id else []

        with patch.object(FeedProcessor, "fetch_source", fetch_source):
            assert len(fetch_articles(config=config)) == 8
            assert len(fetch_articles("3", config=config)) == 3
            assert len(fetch_articles(100, config=config)) == 20

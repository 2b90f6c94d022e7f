"""Briefing formatter and Telegram delivery for the automotive briefing bot."""

import json
import urllib.error
import urllib.request
from collections.abc import Sequence

from .config import TelegramConfig
from .logging_config import create_execution_logger
from .models import Article, DeliveryResult

BRIEFING_TITLE = "Automotive Intelligence Briefing"
EMPTY_SELECTION_LINE = "_No stories selected\\._"
TELEGRAM_MAX_MESSAGE_LENGTH = 4096
CONTACT_FAILURE_MESSAGE = "Failed to contact Telegram."

# Characters reserved by Telegram MarkdownV2 outside of entities.
MARKDOWN_V2_ESCAPES = {
    char: "\\" + char for char in "\\_*[]()~`>#+-=|{}.!"
}
# Inside the (...) part of an inline link only these two need escaping.
LINK_URL_ESCAPES = {")": "\\)", "\\": "\\\\"}

_MARKDOWN_TABLE = str.maketrans(MARKDOWN_V2_ESCAPES)
_LINK_TABLE = str.maketrans(LINK_URL_ESCAPES)


def escape_markdown(text: str | None) -> str:
    """Escape feed-derived text for Telegram MarkdownV2."""
    if not text:
        return ""
    return text.translate(_MARKDOWN_TABLE)


def escape_link_url(url: str | None) -> str:
    """Escape a URL for use as an inline link target."""
    if not url:
        return ""
    return url.translate(_LINK_TABLE)


def format_article_entry(index: int, article: Article) -> str:
    """Render one numbered briefing entry."""
    lines = [
        f"{index}\\. [{escape_markdown(article.title)}]({escape_link_url(article.link)})",
        f"_{escape_markdown(article.source_name)}_",
    ]
    if article.summary:
        lines.append(escape_markdown(article.summary))
    return "\n".join(lines)


def _overflow_line(count: int) -> str:
    noun = "story" if count == 1 else "stories"
    return f"_…and {count} more {noun}_"


def _shorten_escaped(text: str, limit: int) -> str:
    """Cut escaped MarkdownV2 text to ``limit`` characters, ellipsis included."""
    if len(text) <= limit:
        return text
    if limit <= 0:
        return ""
    kept = text[: limit - 1]
    # An odd run of trailing backslashes means the last escape lost its partner
    trailing = len(kept) - len(kept.rstrip("\\"))
    if trailing % 2:
        kept = kept[:-1]
    return kept + "…"


def format_telegram_message(
    articles: Sequence[Article],
    max_length: int = TELEGRAM_MAX_MESSAGE_LENGTH,
) -> str:
    """Render selected articles as a MarkdownV2 briefing.

    Articles keep the order they are given in. Entries that would push the
    message past ``max_length`` are replaced by a single "more stories" line.
    """
    header = f"🚗 *{BRIEFING_TITLE}*"
    if not articles:
        return f"{header}\n\n{EMPTY_SELECTION_LINE}"

    entries = [
        format_article_entry(index, article)
        for index, article in enumerate(articles, start=1)
    ]

    message = header
    for position, entry in enumerate(entries):
        candidate = f"{message}\n\n{entry}"
        remaining = len(entries) - position - 1
        reserve = len(_overflow_line(remaining)) + 2 if remaining else 0
        if len(candidate) + reserve > max_length:
            return f"{message}\n\n{_overflow_line(len(entries) - position)}"
        message = candidate

    return message


def compose_briefing(
    articles: Sequence[Article],
    note: str = "",
    max_length: int = TELEGRAM_MAX_MESSAGE_LENGTH,
) -> str:
    """Build the final message, with an optional operator intro note.

    A note too long to leave room for the header and the "more stories"
    line is shortened with an ellipsis.
    """
    intro = escape_markdown(note.strip()) if note else ""
    if intro:
        smallest_body = format_telegram_message(articles, max_length=0)
        intro = _shorten_escaped(intro, max_length - len(smallest_body) - 2)
    if not intro:
        return format_telegram_message(articles, max_length=max_length)

    prefix = f"{intro}\n\n"
    body = format_telegram_message(
        articles, max_length=max(max_length - len(prefix), 0)
    )
    return prefix + body


def validate_delivery_payload(token: str, chat_id: str, text: str) -> None:
    """Check a delivery request before anything is sent.

    Raises:
        ValueError: With the first problem found
    """
    if not isinstance(token, str) or len(token.strip()) < 10:
        raise ValueError("Bot token is required")
    if not isinstance(chat_id, str) or not chat_id.strip():
        raise ValueError("Channel or chat ID is required")
    if not isinstance(text, str) or not text.strip():
        raise ValueError("Message text is required")


class TelegramPublisher:
    """Sends briefings to a Telegram chat through the Bot API."""

    def __init__(self, config: TelegramConfig, execution_id: str | None = None):
        """Initialize Telegram publisher with configuration."""
        self.config = config
        self.logger = create_execution_logger("telegram_publisher", execution_id)
        self.base_url = f"{config.api_base}/bot{config.bot_token}"

    def send_briefing(self, articles: Sequence[Article], note: str = "") -> DeliveryResult:
        """Format the selected articles and send them as one message."""
        return self.send_text(compose_briefing(articles, note))

    def send_text(self, text: str) -> DeliveryResult:
        """Send a preformatted MarkdownV2 message in a single attempt.

        Returns:
            DeliveryResult carrying Telegram's own error description on failure
        """
        url = f"{self.base_url}/sendMessage"
        data = {
            "chat_id": self.config.chat_id,
            "text": text,
            "parse_mode": self.config.parse_mode,
            "disable_web_page_preview": self.config.disable_web_page_preview,
        }
        req = urllib.request.Request(
            url,
            data=json.dumps(data).encode("utf-8"),
            headers={
                "Content-Type": "application/json",
                "User-Agent": "Car-Briefing-Bot/1.0",
            },
        )

        self.logger.info(
            "Sending briefing to Telegram",
            chat_id=self.config.chat_id,
            message_length=len(text),
        )

        try:
            with urllib.request.urlopen(req, timeout=self.config.timeout) as response:
                body = self._read_json(response)
                status = response.status
        except urllib.error.HTTPError as e:
            description = self._read_json(e).get("description")
            error = description or f"Telegram API returned status {e.code}"
            self.logger.error(
                f"HTTP error sending message: {e.code} - {error}",
                http_code=e.code,
                http_reason=str(e.reason),
            )
            return DeliveryResult(ok=False, error=error, status_code=e.code)
        except urllib.error.URLError as e:
            self.logger.error(
                f"URL error sending message: {e.reason}", error_reason=str(e.reason)
            )
            return DeliveryResult(ok=False, error=CONTACT_FAILURE_MESSAGE)
        except Exception as e:
            self.logger.error(f"Unexpected error sending message: {e}", error=str(e))
            return DeliveryResult(ok=False, error=CONTACT_FAILURE_MESSAGE)

        if status == 200 and body.get("ok"):
            self.logger.info("Message sent successfully to Telegram", status_code=status)
            return DeliveryResult(ok=True, status_code=status)

        error = body.get("description") or "Telegram API returned an error."
        self.logger.error(
            f"Telegram rejected the message: {error}", status_code=status
        )
        return DeliveryResult(ok=False, error=error, status_code=status)

    @staticmethod
    def _read_json(response) -> dict:
        try:
            payload = json.loads(response.read().decode("utf-8"))
        except (ValueError, AttributeError, TypeError, OSError):
            return {}
        return payload if isinstance(payload, dict) else {}

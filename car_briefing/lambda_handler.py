"""Lambda entry point exposing article aggregation and Telegram delivery."""

import base64
import json
import os
from datetime import UTC, datetime
from typing import Any

import boto3

from .aggregator import build_aggregator
from .config import Config
from .logging_config import create_execution_logger, setup_structured_logging
from .sources import ConfigurationError
from .telegram import CONTACT_FAILURE_MESSAGE, TelegramPublisher, validate_delivery_payload

setup_structured_logging(os.getenv("LOG_LEVEL", "INFO"))

METRICS_NAMESPACE = "Car-Briefing-Bot"
METRIC_NAMES = {
    "sources_total": "SourcesTotal",
    "sources_empty": "SourcesEmpty",
    "articles_found": "ArticlesFound",
    "articles_deduplicated": "ArticlesDeduplicated",
    "articles_returned": "ArticlesReturned",
}

SOURCES_ROUTE = "/api/sources"
TELEGRAM_ROUTE = "/api/telegram"


def _response(status_code: int, body: dict[str, Any]) -> dict[str, Any]:
    return {
        "statusCode": status_code,
        "headers": {"Content-Type": "application/json", "Cache-Control": "no-store"},
        "body": json.dumps(body, ensure_ascii=False),
    }


def _request_line(event: dict[str, Any]) -> tuple[str, str]:
    """Extract (method, path) from REST (v1) or HTTP (v2) API Gateway events."""
    http_context = event.get("requestContext", {}).get("http", {})
    method = event.get("httpMethod") or http_context.get("method") or "GET"
    path = event.get("path") or event.get("rawPath") or http_context.get("path") or "/"
    return method.upper(), path.rstrip("/") or "/"


def _json_body(event: dict[str, Any]) -> Any:
    body = event.get("body") or ""
    if event.get("isBase64Encoded"):
        body = base64.b64decode(body).decode("utf-8")
    return json.loads(body) if body else {}


def lambda_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """
    Route an API Gateway request to the matching operation.

    Args:
        event: API Gateway proxy event
        context: Lambda context object

    Returns:
        API Gateway proxy response
    """
    execution_id = f"lambda_{datetime.now(UTC).strftime('%Y%m%d_%H%M%S_%f')}"
    main_logger = create_execution_logger("main", execution_id)

    method, path = _request_line(event)
    main_logger.info(
        f"Handling {method} {path}",
        lambda_request_id=getattr(context, "aws_request_id", "unknown"),
        method=method,
        path=path,
    )

    if path == SOURCES_ROUTE and method == "GET":
        return handle_sources(event, execution_id)
    if path == TELEGRAM_ROUTE and method == "POST":
        return handle_telegram(event, execution_id)

    main_logger.warning(f"No route for {method} {path}", method=method, path=path)
    return _response(404, {"error": "Not found"})


def handle_sources(event: dict[str, Any], execution_id: str) -> dict[str, Any]:
    """Serve the latest aggregated articles; never fails on feed errors."""
    logger = create_execution_logger("sources_api", execution_id)
    config = Config()
    params = event.get("queryStringParameters") or {}

    try:
        aggregator = build_aggregator(config, execution_id=execution_id)
        articles = aggregator.aggregate(aggregator.resolve_limit(params.get("limit")))
    except ConfigurationError as e:
        logger.error(f"Aggregation misconfigured: {e}", error=str(e))
        return _response(500, {"error": "Failed to load articles."})

    logger.info("Returning articles", articles_count=len(articles))

    if config.metrics_enabled:
        send_cloudwatch_metrics(
            aggregator.last_run_metrics, config.aws_region, execution_id
        )

    return _response(200, {"articles": [article.to_dict() for article in articles]})


def handle_telegram(event: dict[str, Any], execution_id: str) -> dict[str, Any]:
    """Forward a composed briefing to Telegram and report the outcome."""
    logger = create_execution_logger("telegram_api", execution_id)

    try:
        payload = _json_body(event)
        if not isinstance(payload, dict):
            raise ValueError("Invalid payload.")
        token = payload.get("token", "")
        chat_id = payload.get("chatId", "")
        text = payload.get("text", "")
        validate_delivery_payload(token, chat_id, text)
    except ValueError as e:
        # json.JSONDecodeError and binascii.Error are ValueErrors too
        logger.warning(f"Rejected delivery payload: {e}", error=str(e))
        return _response(400, {"error": str(e) or "Invalid payload."})

    try:
        publisher = TelegramPublisher(
            Config().get_telegram_config(token.strip(), chat_id.strip()),
            execution_id=execution_id,
        )
        result = publisher.send_text(text)
    except Exception as e:
        logger.error(f"Telegram dispatch failed: {e}", error=str(e))
        return _response(500, {"error": CONTACT_FAILURE_MESSAGE})

    if not result.ok:
        return _response(502, {"error": result.error or "Telegram API returned an error."})
    return _response(200, {"ok": True})


def send_cloudwatch_metrics(
    metrics: dict[str, Any], aws_region: str, execution_id: str
) -> None:
    """
    Send aggregation run metrics to CloudWatch.

    Args:
        metrics: Dictionary containing run metrics
        aws_region: AWS region for CloudWatch client
        execution_id: Execution ID for logging context
    """
    metrics_logger = create_execution_logger("cloudwatch_metrics", execution_id)

    try:
        cloudwatch = boto3.client("cloudwatch", region_name=aws_region)
        metric_data = [
            {"MetricName": name, "Value": metrics.get(key, 0), "Unit": "Count"}
            for key, name in METRIC_NAMES.items()
        ]
        metric_data.append(
            {
                "MetricName": "EmptyResult",
                "Value": 1 if metrics.get("articles_returned", 0) == 0 else 0,
                "Unit": "Count",
            }
        )
        cloudwatch.put_metric_data(Namespace=METRICS_NAMESPACE, MetricData=metric_data)
        metrics_logger.info(
            "Successfully sent metrics to CloudWatch",
            metrics=metrics,
            metrics_sent=len(metric_data),
            namespace=METRICS_NAMESPACE,
        )
    except Exception as e:
        metrics_logger.error(f"Failed to send CloudWatch metrics: {e}", error=str(e))

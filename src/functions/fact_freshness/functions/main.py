"""Cloud Function entry points for the fact freshness scheduler and preview staging."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Iterable

import flask
import functions_framework

# Ensure project root is available on import path
project_root = Path(__file__).parent.parent.parent.parent.parent.absolute()
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from src.shared.utils.config_validator import ConfigurationError
from src.shared.utils.env import load_env
from src.shared.utils.logging import setup_logging

from src.functions.fact_freshness.core.contracts.staging import ClusterUpdate, FactUpdate
from src.functions.fact_freshness.core.errors import DueWorkUnavailableError, NotFoundError
from src.functions.fact_freshness.core.orchestration.config_loader import build_staging_config
from src.functions.fact_freshness.core.wiring import (
    build_preview_service,
    build_staging_pipeline,
    orchestrator_session,
)

load_env()
setup_logging(level=os.getenv("LOG_LEVEL", "INFO"))
logger = logging.getLogger(__name__)


def scheduler_handler(request: flask.Request) -> flask.Response:
    """HTTP handler running one scheduler pass, or a manual trigger for one item."""

    if request.method == "OPTIONS":
        return _cors_response({}, status=204)

    if request.method != "POST":
        return _error_response("Method not allowed. Use POST.", status=405)

    payload = request.get_json(silent=True) or {}
    logger.info("Received scheduler invocation with payload keys: %s", list(payload.keys()))

    cluster_id = payload.get("cluster_id")
    fact_id = payload.get("fact_id") or payload.get("pulse_id")
    if cluster_id and fact_id:
        return _error_response("Provide either 'cluster_id' or 'fact_id', not both", status=400)

    overrides = {
        "dry_run": payload.get("dry_run"),
        "max_workers": payload.get("max_workers"),
        "run_maintenance": payload.get("run_maintenance"),
    }

    try:
        with orchestrator_session(overrides) as orchestrator:
            if cluster_id:
                report = orchestrator.trigger_cluster(str(cluster_id))
            elif fact_id:
                report = orchestrator.trigger_fact(str(fact_id))
            else:
                report = orchestrator.run()
    except ConfigurationError as exc:
        logger.error("Configuration error: %s", exc)
        return _error_response(f"Configuration error: {exc}", status=500)
    except DueWorkUnavailableError as exc:
        logger.error("Could not enumerate due work: %s", exc)
        return _error_response(str(exc), status=500)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Unexpected error in scheduler handler")
        return _error_response(f"Internal error: {exc}", status=500)

    body = report.to_dict()
    if not report.success and (cluster_id or fact_id):
        return _cors_response(body, status=404)
    return _cors_response(body)


def preview_handler(request: flask.Request) -> flask.Response:
    """HTTP handler staging a live preview for an article.

    Accepts either ``article_id`` (pending updates are read from the store) or
    inline ``original_content`` with ``fact_updates``/``cluster_updates``.
    """

    if request.method == "OPTIONS":
        return _cors_response({}, status=204)

    if request.method != "POST":
        return _error_response("Method not allowed. Use POST.", status=405)

    payload = request.get_json(silent=True) or {}
    article_id = payload.get("article_id")
    original_content = payload.get("original_content")
    if not article_id and not original_content:
        return _error_response("Either 'article_id' or 'original_content' is required", status=400)

    try:
        fact_updates = [FactUpdate.from_payload(item) for item in payload.get("fact_updates") or []]
        cluster_updates = [ClusterUpdate.from_payload(item) for item in payload.get("cluster_updates") or []]
    except (TypeError, ValueError, AttributeError) as exc:
        return _error_response(f"Invalid update payload: {exc}", status=400)

    overrides = {"timeout_seconds": payload.get("timeout_seconds")}
    try:
        build_staging_config(overrides)
    except ConfigurationError as exc:
        return _error_response(f"Configuration error: {exc}", status=500)
    except (TypeError, ValueError) as exc:
        return _error_response(f"Invalid staging options: {exc}", status=400)

    title = None
    try:
        if article_id and not original_content:
            result, title = asyncio.run(build_preview_service(overrides).preview_article(str(article_id)))
        else:
            pipeline = build_staging_pipeline(overrides)
            result = asyncio.run(
                pipeline.stage(
                    str(original_content),
                    fact_updates=fact_updates,
                    cluster_updates=cluster_updates,
                    article_context=payload.get("article_context"),
                    article_id=str(article_id) if article_id else None,
                )
            )
    except ConfigurationError as exc:
        logger.error("Configuration error: %s", exc)
        return _error_response(f"Configuration error: {exc}", status=500)
    except NotFoundError as exc:
        return _error_response(str(exc), status=404)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Unexpected error in preview handler")
        return _error_response(f"Internal error: {exc}", status=500)

    body = {"status": "success", "title": title, "staging_result": result.to_dict()}
    return _cors_response(body)


def health_check_handler(request: flask.Request) -> flask.Response:
    """Health check endpoint returning module status."""

    return _cors_response({"status": "healthy", "module": "fact_freshness"})


def _cors_response(body: dict[str, Any] | Iterable[Any], status: int = 200) -> flask.Response:
    response = flask.make_response(json.dumps(body, ensure_ascii=False, default=str), status)
    headers = response.headers
    headers["Content-Type"] = "application/json"
    headers["Access-Control-Allow-Origin"] = "*"
    headers["Access-Control-Allow-Methods"] = "POST,OPTIONS"
    headers["Access-Control-Allow-Headers"] = "Content-Type,Authorization,X-API-Key"
    return response


def _error_response(message: str, status: int) -> flask.Response:
    return _cors_response({"status": "error", "message": message}, status=status)


@functions_framework.http
def run_scheduler(request: flask.Request):
    return scheduler_handler(request)


@functions_framework.http
def stage_preview(request: flask.Request):
    return preview_handler(request)


@functions_framework.http
def health_check(request: flask.Request):
    return health_check_handler(request)

"""Deployment wrapper for the fact freshness Cloud Functions."""

from __future__ import annotations

import sys
from pathlib import Path

import flask

project_root = Path(__file__).resolve().parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from src.functions.fact_freshness.functions.main import (
    health_check_handler,
    preview_handler,
    scheduler_handler,
)


def fact_freshness_scheduler(request: flask.Request) -> flask.Response:
    return scheduler_handler(request)


def fact_freshness_preview(request: flask.Request) -> flask.Response:
    return preview_handler(request)


def fact_freshness_health(request: flask.Request) -> flask.Response:
    return health_check_handler(request)

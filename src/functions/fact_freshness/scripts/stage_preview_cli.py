"""CLI for staging a live preview of an article with pending fact updates."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

PROJECT_ROOT = Path(__file__).resolve().parents[4]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from src.shared.utils.config_validator import ConfigurationError
from src.shared.utils.env import load_env
from src.shared.utils.logging import setup_logging

from src.functions.fact_freshness.core.contracts.staging import ClusterUpdate, FactUpdate
from src.functions.fact_freshness.core.errors import NotFoundError
from src.functions.fact_freshness.core.wiring import build_preview_service, build_staging_pipeline

LOG = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Stage a live preview for an article.")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--article-id", help="Article whose pending updates should be staged")
    source.add_argument(
        "--request",
        type=Path,
        help="JSON file with original_content, fact_updates, cluster_updates and article_context",
    )
    parser.add_argument("--timeout", type=int, help="Overall staging budget in seconds")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--output",
        choices=("text", "json"),
        default="text",
        help="Output format for results (default: text)",
    )
    return parser.parse_args(argv)


def run(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    load_env()
    setup_logging(level="DEBUG" if args.verbose else None)
    overrides = {"timeout_seconds": args.timeout}

    try:
        if args.article_id:
            result, _title = asyncio.run(build_preview_service(overrides).preview_article(args.article_id))
        else:
            payload = json.loads(args.request.read_text(encoding="utf-8"))
            result = asyncio.run(
                build_staging_pipeline(overrides).stage(
                    payload["original_content"],
                    fact_updates=[FactUpdate.from_payload(item) for item in payload.get("fact_updates") or []],
                    cluster_updates=[ClusterUpdate.from_payload(item) for item in payload.get("cluster_updates") or []],
                    article_context=payload.get("article_context"),
                    article_id=payload.get("article_id"),
                )
            )
    except ConfigurationError as exc:
        LOG.error("%s", exc)
        return 1
    except NotFoundError as exc:
        LOG.error("%s", exc)
        return 1
    except (OSError, KeyError, ValueError) as exc:
        LOG.error("Could not read staging request: %s", exc)
        return 1

    if args.output == "json":
        json.dump(result.to_dict(), sys.stdout, indent=2, ensure_ascii=False)
        sys.stdout.write("\n")
    else:
        status = result.preview_status
        LOG.info("Preview status: %s - %s", status.status, status.reason)
        LOG.info("Recommended action: %s", status.action)
        LOG.info(
            "Final score %.2f, %d corrections applied",
            result.metadata.final_score,
            result.correction_count,
        )
    return 0 if result.ready_for_preview else 2


if __name__ == "__main__":  # pragma: no cover - manual execution entry
    sys.exit(run())

"""CLI entry point for the fact freshness scheduler."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional

PROJECT_ROOT = Path(__file__).resolve().parents[4]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from src.shared.utils.config_validator import ConfigurationError
from src.shared.utils.env import load_env
from src.shared.utils.logging import setup_logging

from src.functions.fact_freshness.core.errors import DueWorkUnavailableError
from src.functions.fact_freshness.core.wiring import orchestrator_session

LOG = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Refresh due facts and clusters.")
    target = parser.add_mutually_exclusive_group()
    target.add_argument("--cluster", help="Refresh a single cluster now, regardless of its due time")
    target.add_argument("--fact", help="Refresh a single fact now (clustered facts refresh their cluster)")
    parser.add_argument("--dry-run", action="store_true", help="Resolve values but skip database writes")
    parser.add_argument("--max-workers", type=int, help="Maximum concurrent member writes per cluster")
    parser.add_argument("--no-maintenance", action="store_true", help="Skip cache expiry and stats refresh")
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

    overrides = {
        "dry_run": True if args.dry_run else None,
        "max_workers": args.max_workers,
        "run_maintenance": False if args.no_maintenance else None,
    }
    try:
        with orchestrator_session(overrides) as orchestrator:
            if args.cluster:
                report = orchestrator.trigger_cluster(args.cluster)
            elif args.fact:
                report = orchestrator.trigger_fact(args.fact)
            else:
                report = orchestrator.run()
    except ConfigurationError as exc:
        LOG.error("%s", exc)
        return 1
    except DueWorkUnavailableError as exc:
        LOG.error("Could not enumerate due work: %s", exc)
        return 1

    output = report.to_dict()
    if args.output == "json":
        json.dump(output, sys.stdout, indent=2, default=str)
        sys.stdout.write("\n")
    else:
        _print_summary(output)

    if not report.success:
        return 1
    return 0 if report.failed == 0 else 2


def _print_summary(output: Dict[str, object]) -> None:
    summary = output.get("summary") or {}
    LOG.info(
        "%s: %s processed, %s successful, %s failed, %s skipped (%s%%)",
        output.get("message"),
        summary.get("processed"),
        summary.get("successful"),
        summary.get("failed"),
        summary.get("skipped"),
        summary.get("success_rate"),
    )
    for detail in output.get("details") or []:
        LOG.info(
            "[%s %s] %s %s",
            detail.get("item_type"),
            detail.get("item_id"),
            detail.get("status"),
            detail.get("reason") or detail.get("new_value") or "",
        )
    errors = output.get("errors") or []
    if errors:
        LOG.warning("Encountered %s errors", len(errors))
        for entry in errors:
            LOG.warning(
                "[%s %s] %s - %s",
                entry.get("item_type"),
                entry.get("item_id"),
                entry.get("stage"),
                entry.get("message"),
            )


if __name__ == "__main__":  # pragma: no cover - manual execution entry
    sys.exit(run())

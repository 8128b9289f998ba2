"""Local development server for the fact freshness Cloud Functions."""

from __future__ import annotations

import os
import sys
from pathlib import Path

from flask import Flask, request

# Ensure project root is on sys.path
project_root = Path(__file__).parent.parent.parent.parent.parent.absolute()
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from src.functions.fact_freshness.functions.main import (
    health_check_handler,
    preview_handler,
    scheduler_handler,
)

app = Flask(__name__)


@app.route("/", methods=["POST", "OPTIONS"])
def local_scheduler():
    """Proxy scheduler requests to the Cloud Function handler."""
    return scheduler_handler(request)


@app.route("/preview", methods=["POST", "OPTIONS"])
def local_preview():
    return preview_handler(request)


@app.route("/health", methods=["GET"])
def health():
    """Health check endpoint."""
    return health_check_handler(request)


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 8080))
    print(f"Starting local fact freshness server on http://localhost:{port}")
    print(f"Test with: curl -X POST http://localhost:{port} -H 'Content-Type: application/json' -d '{{\"dry_run\": true}}'")
    print("")
    app.run(host="0.0.0.0", port=port, debug=True)

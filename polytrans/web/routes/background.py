"""Loopback worker endpoint used by LoopbackLauncher."""

from __future__ import annotations

import hmac

from flask import Blueprint, jsonify, request

from polytrans.config import get_background_setting
from polytrans.jobs.launchers import SECRET_HEADER
from polytrans.logger import get_logger

from ..state import error_response, get_runtime

background_bp = Blueprint("background", __name__)
logger = get_logger(__name__)


@background_bp.post("/run")
def run_job():
    """Run the job for a token inline; the caller does not wait for the response."""
    runtime = get_runtime()
    expected = get_background_setting(runtime.load_config(), "loopback_secret") or ""
    provided = request.headers.get(SECRET_HEADER, "")
    if not expected or not hmac.compare_digest(provided, expected):
        logger.warning("Rejected loopback job request with an invalid secret")
        return error_response("Forbidden", 403, "invalid_secret")

    token = (request.get_json(silent=True) or {}).get("token")
    if not token:
        return error_response("Missing job token", 400, "missing_fields")

    processed = runtime.worker.run(token)
    return jsonify({"processed": processed})

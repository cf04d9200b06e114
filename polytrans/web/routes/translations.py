"""Translation job API routes."""

from __future__ import annotations

from typing import Any, Dict

from flask import Blueprint, jsonify, request

from polytrans.core import database as db
from polytrans.jobs.models import JobAction, translation_result_key
from polytrans.logger import get_logger

from ..state import error_response, get_runtime, poll_response

translations_bp = Blueprint("translations", __name__)
logger = get_logger(__name__)

MODES = ("async", "sync")


@translations_bp.post("/")
def start_translation():
    """Start translating a post; async mode returns immediately, sync mode waits for the result."""
    data: Dict[str, Any] = request.get_json(silent=True) or {}
    post_id = data.get("post_id")
    source_lang = (data.get("source_lang") or "").strip()
    target_lang = (data.get("target_lang") or "").strip()
    mode = data.get("mode", "async")

    missing = [name for name, value in (("post_id", post_id), ("source_lang", source_lang),
                                        ("target_lang", target_lang)) if not value]
    if missing:
        return error_response(f"Missing required fields: {', '.join(missing)}", 400, "missing_fields")
    if mode not in MODES:
        return error_response(f"Invalid mode '{mode}'", 400, "invalid_mode")
    if source_lang == target_lang:
        return error_response("Source and target language are the same", 400, "same_language")
    if db.get_post(post_id) is None:
        logger.warning("Post %s not found when starting translation", post_id)
        return error_response(f"Post {post_id} not found", 404, "post_not_found")

    runtime = get_runtime()
    if mode == "sync":
        outcome = runtime.translation_manager.process_translation(
            post_id, source_lang, target_lang, runtime.load_config()
        )
        return jsonify({"status": "completed", "result": outcome.to_dict()})

    # A result left over from an earlier run would be read as this run's result
    runtime.job_store.delete(translation_result_key(post_id, target_lang))
    args = {"post_id": post_id, "source_lang": source_lang, "target_lang": target_lang}
    if not runtime.dispatcher.spawn(args, JobAction.TRANSLATE):
        return error_response("Could not start the translation in the background", 503, "spawn_failed")

    logger.info(f"Translation of post {post_id} to {target_lang} sent to background")
    return jsonify({"status": "sent", "post_id": post_id, "target_lang": target_lang}), 202


@translations_bp.get("/<int:post_id>/<target_lang>")
def poll_translation(post_id: int, target_lang: str):
    return poll_response(translation_result_key(post_id, target_lang))


@translations_bp.get("/<int:post_id>/<target_lang>/status")
def translation_status(post_id: int, target_lang: str):
    """Stored translation status of a post for one language."""
    status = db.get_translation_status(post_id, target_lang)
    if status is None:
        return error_response(f"No translation of post {post_id} to {target_lang}", 404, "not_found")
    return jsonify(status)

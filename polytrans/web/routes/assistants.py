"""Managed assistant API routes."""

from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict

from flask import Blueprint, jsonify, request

from polytrans.assistants.manager import AssistantValidationError
from polytrans.logger import get_logger
from polytrans.translation.backend_id import managed_backend_id

from ..state import error_response, get_runtime

assistants_bp = Blueprint("assistants", __name__)
logger = get_logger(__name__)


def _serialize(assistant) -> Dict[str, Any]:
    payload = assistant.to_dict()
    payload["backend_id"] = managed_backend_id(assistant.id)
    return payload


@assistants_bp.get("/")
def list_assistants():
    status = request.args.get("status")
    assistants = get_runtime().assistants.list(status)
    return jsonify({"assistants": [_serialize(a) for a in assistants]})


@assistants_bp.post("/")
def create_assistant():
    data: Dict[str, Any] = request.get_json(silent=True) or {}
    assistants = get_runtime().assistants
    try:
        assistant_id = assistants.create(data)
    except AssistantValidationError as e:
        return error_response("Assistant validation failed", 400, "invalid_assistant", e.errors)
    return jsonify({"assistant": _serialize(assistants.get(assistant_id))}), 201


@assistants_bp.get("/<int:assistant_id>")
def get_assistant(assistant_id: int):
    assistant = get_runtime().assistants.get(assistant_id)
    if assistant is None:
        return error_response(f"Managed assistant {assistant_id} not found", 404, "assistant_not_found")
    return jsonify({"assistant": _serialize(assistant)})


@assistants_bp.put("/<int:assistant_id>")
def update_assistant(assistant_id: int):
    data: Dict[str, Any] = request.get_json(silent=True) or {}
    assistants = get_runtime().assistants
    if assistants.get(assistant_id) is None:
        return error_response(f"Managed assistant {assistant_id} not found", 404, "assistant_not_found")
    try:
        assistants.update(assistant_id, data)
    except AssistantValidationError as e:
        return error_response("Assistant validation failed", 400, "invalid_assistant", e.errors)
    return jsonify({"assistant": _serialize(assistants.get(assistant_id))})


@assistants_bp.delete("/<int:assistant_id>")
def delete_assistant(assistant_id: int):
    if not get_runtime().assistants.delete(assistant_id):
        return error_response(f"Managed assistant {assistant_id} not found", 404, "assistant_not_found")
    return jsonify({"deleted": assistant_id})


@assistants_bp.post("/<int:assistant_id>/test")
def test_assistant(assistant_id: int):
    """Run an assistant once against a supplied variable context."""
    data: Dict[str, Any] = request.get_json(silent=True) or {}
    runtime = get_runtime()
    run = runtime.assistant_executor.execute(assistant_id, data.get("context") or {}, runtime.load_config())
    status = 200 if run.success else 422
    if run.error_code == "assistant_not_found":
        status = 404
    return jsonify(asdict(run)), status

"""Workflow API routes: definitions, test runs and executions."""

from __future__ import annotations

from typing import Any, Dict

from flask import Blueprint, jsonify, request

from polytrans.jobs.models import workflow_exec_key, workflow_test_key
from polytrans.logger import get_logger

from ..state import error_response, get_runtime, poll_response

workflows_bp = Blueprint("workflows", __name__)
logger = get_logger(__name__)


@workflows_bp.get("/")
def list_workflows():
    language = request.args.get("language")
    return jsonify({"workflows": get_runtime().workflow_storage.list(language)})


@workflows_bp.post("/")
def save_workflow():
    """Create or replace a workflow definition."""
    data: Dict[str, Any] = request.get_json(silent=True) or {}
    if not data.get("language"):
        return error_response("Workflow language is required", 400, "missing_fields")

    runtime = get_runtime()
    errors = runtime.workflow_engine.validate(data)
    if errors:
        return error_response("Workflow validation failed", 400, "invalid_workflow", errors)
    workflow = runtime.workflow_storage.save(data)
    return jsonify({"workflow": workflow}), 201


@workflows_bp.get("/<workflow_id>")
def get_workflow(workflow_id: str):
    workflow = get_runtime().workflow_storage.get(workflow_id)
    if workflow is None:
        return error_response(f"Workflow {workflow_id} not found", 404, "workflow_not_found")
    return jsonify({"workflow": workflow})


@workflows_bp.delete("/<workflow_id>")
def delete_workflow(workflow_id: str):
    if not get_runtime().workflow_storage.delete(workflow_id):
        return error_response(f"Workflow {workflow_id} not found", 404, "workflow_not_found")
    return jsonify({"deleted": workflow_id})


@workflows_bp.post("/test")
def start_test():
    """Run a workflow definition in test mode in the background."""
    data: Dict[str, Any] = request.get_json(silent=True) or {}
    workflow = data.get("workflow")
    if not isinstance(workflow, dict):
        return error_response("A workflow definition is required", 400, "missing_fields")

    runtime = get_runtime()
    errors = runtime.workflow_engine.validate(workflow)
    if errors:
        return error_response("Workflow validation failed", 400, "invalid_workflow", errors)

    test_id = runtime.workflow_manager.start_test(workflow, data.get("context") or {}, data.get("post_id"))
    if test_id is None:
        return error_response("Could not start the workflow test in the background", 503, "spawn_failed")
    return jsonify({"status": "sent", "test_id": test_id}), 202


@workflows_bp.get("/test/<test_id>")
def poll_test(test_id: str):
    return poll_response(workflow_test_key(test_id))


@workflows_bp.post("/<workflow_id>/execute")
def start_execution(workflow_id: str):
    """Execute a stored workflow on a post in the background."""
    data: Dict[str, Any] = request.get_json(silent=True) or {}
    post_id = data.get("post_id")
    if not post_id:
        return error_response("Missing required field: post_id", 400, "missing_fields")

    runtime = get_runtime()
    if runtime.workflow_storage.get(workflow_id) is None:
        return error_response(f"Workflow {workflow_id} not found", 404, "workflow_not_found")

    start = runtime.workflow_manager.start_execution(workflow_id, post_id, runtime.load_config())
    if start.status == "locked":
        return error_response(start.error, 409, "workflow_locked", {"execution_id": start.execution_id})
    if not start.started:
        return error_response(start.error, 503, "spawn_failed")
    return jsonify({"status": "sent", "execution_id": start.execution_id}), 202


@workflows_bp.get("/executions/<execution_id>")
def poll_execution(execution_id: str):
    return poll_response(workflow_exec_key(execution_id))

"""Settings management API routes."""

from __future__ import annotations

import copy
from typing import Any, Dict, Optional

from flask import Blueprint, jsonify, request

import polytrans.config as config
from polytrans.logger import get_logger, refresh_log_mode
from polytrans.translation.mapping import load_path_settings
from polytrans.translation.path_resolver import resolve_path

from ..state import error_response, get_runtime

settings_bp = Blueprint("settings", __name__)
logger = get_logger(__name__)

# Never sent to clients and never replaced by a settings update
HIDDEN_BACKGROUND_KEYS = ("loopback_secret",)


def _public_config(current: Dict[str, Any]) -> Dict[str, Any]:
    public = copy.deepcopy(current)
    for key in HIDDEN_BACKGROUND_KEYS:
        public.get("background", {}).pop(key, None)
    return public


@settings_bp.get("/")
def get_settings():
    """Return current configuration with default values merged."""
    runtime = get_runtime()
    current = runtime.load_config()
    return jsonify({
        "config": _public_config(current),
        "meta": {
            "translation_providers": [
                {"id": p.provider_id, "name": p.name} for p in runtime.providers.all()
            ],
            "chat_vendors": [
                {"id": v, "name": runtime.chat_factory.display_name(v)} for v in runtime.chat_factory.vendor_ids()
            ],
            "assistant_vendors": [
                {"id": c.provider_id, "name": c.display_name} for c in runtime.assistant_factory.registered()
            ],
            "failure_policies": list(config.FAILURE_POLICIES),
        },
    })


@settings_bp.put("/")
def update_settings():
    """Update configuration; keys not in the request keep their current values."""
    data = request.get_json(silent=True)
    if not data or "config" not in data or not isinstance(data["config"], dict):
        return error_response("Request body must contain a config object", 400, "config_missing")

    new_config = data["config"]
    validation_error = validate_config(new_config)
    if validation_error:
        return error_response(validation_error, 400, "invalid_config")

    runtime = get_runtime()
    current = runtime.load_config()
    for key, value in new_config.items():
        if key == "background" and isinstance(value, dict):
            updates = {k: v for k, v in value.items() if k not in HIDDEN_BACKGROUND_KEYS}
            current["background"].update(updates)
        else:
            current[key] = value

    runtime.config_store.save(current)
    refresh_log_mode()
    logger.info("Settings updated")

    _, mapping = load_path_settings(current)
    mapping_check = runtime.validator.validate_assistants_mapping(mapping, current)
    return jsonify({
        "config": _public_config(current),
        "mapping_validation": mapping_check.to_dict(),
    })


@settings_bp.post("/validate-path")
def validate_path():
    """Resolve and validate the path for a language pair with the stored settings."""
    data: Dict[str, Any] = request.get_json(silent=True) or {}
    source_lang = (data.get("source_lang") or "").strip()
    target_lang = (data.get("target_lang") or "").strip()
    if not source_lang or not target_lang:
        return error_response("source_lang and target_lang are required", 400, "missing_fields")
    if source_lang == target_lang:
        return error_response("Source and target language are the same", 400, "same_language")

    runtime = get_runtime()
    current = runtime.load_config()
    rules, mapping = load_path_settings(current)
    path = resolve_path(source_lang, target_lang, rules)

    effective, hops = runtime.path_executor.plan(path, mapping)
    validation = runtime.validator.validate_path(path, effective, current)
    return jsonify({
        "path": path,
        "valid": validation.valid,
        "errors": validation.errors,
        "hops": [
            {"key": hop.key, "backend_id": hop.backend_id or None, "fallback": hop.fallback}
            for hop in hops
        ],
    })


def validate_config(new_config: Dict[str, Any]) -> Optional[str]:
    """Return an error message for invalid settings, or None."""
    if "log_mode" in new_config and new_config["log_mode"] not in ("off", "info", "debug"):
        return "log_mode must be one of: off, info, debug"

    if "request_timeout" in new_config:
        try:
            float(new_config["request_timeout"])
        except (TypeError, ValueError):
            return "request_timeout must be a number of seconds"

    policy = new_config.get("workflow_failure_policy")
    if policy is not None and policy not in config.FAILURE_POLICIES:
        return f"workflow_failure_policy must be one of: {', '.join(config.FAILURE_POLICIES)}"

    if "enabled_translation_providers" in new_config and not isinstance(
        new_config["enabled_translation_providers"], list
    ):
        return "enabled_translation_providers must be a list"

    rules = new_config.get("translation_path_rules")
    if rules is not None:
        if not isinstance(rules, list):
            return "translation_path_rules must be a list"
        for index, rule in enumerate(rules):
            if not isinstance(rule, dict) or not rule.get("source") or not rule.get("target"):
                return f"translation_path_rules[{index}] needs source and target"

    mapping = new_config.get("assistants_mapping")
    if mapping is not None and not isinstance(mapping, dict):
        return "assistants_mapping must be an object"

    if "background" in new_config and not isinstance(new_config["background"], dict):
        return "background must be an object"

    return None

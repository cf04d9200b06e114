"""
Output actions of workflow steps.

An output action copies a value from a step's output onto the post being
processed or into a named option. In test mode nothing is persisted: each
action is recorded as a change and applied to the returned context only.

Action types: update_post_title, update_post_content, update_post_excerpt,
append_to_post_content, prepend_to_post_content, update_post_meta,
save_to_option, update_post_status, update_post_date.
"""

from __future__ import annotations

import copy
import json
from datetime import datetime
from typing import Any, Dict, List, Optional

from polytrans.core import database as db
from polytrans.core.stores import ConfigStore
from polytrans.logger import get_logger
from polytrans.templating import lookup_path

logger = get_logger(__name__)

ACTION_TYPES = (
    "update_post_title",
    "update_post_content",
    "update_post_excerpt",
    "append_to_post_content",
    "prepend_to_post_content",
    "update_post_meta",
    "save_to_option",
    "update_post_status",
    "update_post_date",
)

POST_STATUSES = ("publish", "draft", "pending", "private", "trash", "future")
# Loose spellings models tend to return
STATUS_ALIASES = {
    "published": "publish",
    "public": "publish",
    "live": "publish",
    "drafted": "draft",
    "pending review": "pending",
    "waiting for review": "pending",
    "private post": "private",
    "scheduled": "future",
    "schedule": "future",
    "deleted": "trash",
    "move to trash": "trash",
}
DATE_FORMATS = ("%Y-%m-%d %H:%M:%S", "%Y-%m-%d %H:%M", "%Y-%m-%d", "%d/%m/%Y", "%m/%d/%Y",
                "%Y.%m.%d", "%d.%m.%Y", "%m.%d.%Y")
POST_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Actions whose target names a key instead of a post field
_KEYED_ACTIONS = ("update_post_meta", "save_to_option")

# Tried in order when an action names no source variable
AUTO_DETECT_VARIABLES = ("ai_response", "processed_content", "content", "assistant_response")

_MISSING = object()


def _as_text(value: Any) -> str:
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return "" if value is None else str(value)


def parse_post_status(value: Any) -> Optional[str]:
    """Canonical post status for a model reply such as '"Published"'; None when unrecognized."""
    if not isinstance(value, str):
        return None
    status = value.strip().strip("\"'").strip().lower()
    if status in POST_STATUSES:
        return status
    return STATUS_ALIASES.get(status)


def parse_post_date(value: Any) -> Optional[str]:
    """Normalize a date or datetime reply to YYYY-MM-DD HH:MM:SS; None when unparseable."""
    if not isinstance(value, str):
        return None
    text = value.strip().strip("\"'").strip()
    if not text:
        return None
    for date_format in DATE_FORMATS:
        try:
            return datetime.strptime(text, date_format).strftime(POST_DATE_FORMAT)
        except ValueError:
            continue
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed.strftime(POST_DATE_FORMAT)


class WorkflowOutputProcessor:

    def __init__(self, config_store: Optional[ConfigStore] = None):
        self.config_store = config_store or ConfigStore()

    @staticmethod
    def validate_actions(actions: List[Dict[str, Any]]) -> List[str]:
        errors = []
        if not isinstance(actions, list):
            return ["Output actions must be a list"]
        for index, action in enumerate(actions):
            if not isinstance(action, dict):
                errors.append(f"Output action {index + 1}: must be an object")
                continue
            action_type = action.get("type")
            if action_type not in ACTION_TYPES:
                errors.append(f"Output action {index + 1}: unknown type '{action_type}'")
            elif action_type in _KEYED_ACTIONS and not action.get("target"):
                errors.append(f"Output action {index + 1}: '{action_type}' needs a target key")
        return errors

    @staticmethod
    def detect_value(step_data: Dict[str, Any]) -> Any:
        """Value used when an action names no source variable."""
        for name in AUTO_DETECT_VARIABLES:
            if name in step_data:
                return step_data[name]
        for value in step_data.values():
            return value
        return None

    def resolve_value(self, action: Dict[str, Any], step_data: Dict[str, Any], context: Dict[str, Any]) -> Any:
        source = (action.get("source_variable") or "").strip()
        if not source:
            return self.detect_value(step_data)
        value = lookup_path(step_data, source, _MISSING)
        if value is _MISSING:
            value = lookup_path(context, source, _MISSING)
        return None if value is _MISSING else value

    def process_step_outputs(self, step_data: Dict[str, Any], actions: List[Dict[str, Any]],
                             context: Dict[str, Any], test_mode: bool = False) -> Dict[str, Any]:
        """
        Apply a step's output actions.

        Args:
            step_data: Output of the step.
            actions: Output action definitions of the step.
            context: Current variable context; not modified.
            test_mode: Record changes instead of persisting them.

        Returns:
            Dict with success, processed_actions, errors, changes and updated_context.
        """
        updated = copy.deepcopy(context)
        errors: List[str] = []
        changes: List[Dict[str, Any]] = []
        processed = 0

        for action in actions or []:
            action_type = action.get("type") if isinstance(action, dict) else None
            if action_type not in ACTION_TYPES:
                errors.append(f"Unknown output action type '{action_type}'")
                continue

            value = self.resolve_value(action, step_data, updated)
            if value is None:
                source = action.get("source_variable") or "auto-detected output"
                errors.append(f"{action_type}: variable '{source}' not found in step output")
                continue

            try:
                change = self._apply(action, value, updated, test_mode)
            except ValueError as e:
                errors.append(f"{action_type}: {e}")
                continue
            changes.append(change)
            processed += 1

        if errors:
            logger.warning(f"Output actions finished with {len(errors)} error(s): {errors}")
        return {
            "success": not errors,
            "processed_actions": processed,
            "errors": errors,
            "changes": changes,
            "updated_context": updated,
        }

    def _apply(self, action: Dict[str, Any], value: Any, context: Dict[str, Any], test_mode: bool) -> Dict[str, Any]:
        action_type = action["type"]
        target = action.get("target") or ""

        if action_type == "save_to_option":
            if not target:
                raise ValueError("option name is required")
            if not test_mode:
                self.config_store.set(target, value)
            context.setdefault("options", {})[target] = value
            return self._change(action_type, target, None, value, test_mode)

        if action_type == "update_post_meta":
            if not target:
                raise ValueError("meta key is required")
            meta = context.setdefault("meta", {})
            previous = meta.get(target)
            meta[target] = value
            if not test_mode:
                self._write_post(context, meta=dict(meta))
            return self._change(action_type, target, previous, value, test_mode)

        if action_type == "update_post_status":
            status = parse_post_status(value)
            if status is None:
                raise ValueError(f"invalid post status '{value}'; valid statuses are {', '.join(POST_STATUSES)}")
            return self._apply_post_field(action_type, "status", status, context, test_mode)

        if action_type == "update_post_date":
            published_at = parse_post_date(value)
            if published_at is None:
                raise ValueError(f"invalid date '{value}'")
            return self._apply_post_field(action_type, "published_at", published_at, context, test_mode)

        text = _as_text(value)
        if action_type == "update_post_title":
            field, new_value = "title", text
        elif action_type == "update_post_excerpt":
            field, new_value = "excerpt", text
        elif action_type == "update_post_content":
            field, new_value = "content", text
        elif action_type == "append_to_post_content":
            field, new_value = "content", (context.get("content") or "") + text
        else:
            field, new_value = "content", text + (context.get("content") or "")

        previous = context.get(field)
        context[field] = new_value
        if isinstance(context.get("post"), dict):
            context["post"][field] = new_value
        if not test_mode:
            self._write_post(context, **{field: new_value})
        return self._change(action_type, field, previous, new_value, test_mode)

    def _apply_post_field(self, action_type: str, field: str, value: str, context: Dict[str, Any],
                          test_mode: bool) -> Dict[str, Any]:
        """Status and publish date live only under context["post"]."""
        post = context.setdefault("post", {})
        previous = post.get(field)
        post[field] = value
        if not test_mode:
            self._write_post(context, **{field: value})
        return self._change(action_type, field, previous, value, test_mode)

    @staticmethod
    def _write_post(context: Dict[str, Any], **fields) -> None:
        post_id = context.get("post_id")
        if not post_id:
            raise ValueError("no post to update in this context")
        if not db.update_post(post_id, **fields):
            raise ValueError(f"post {post_id} not found")
        logger.info(f"Updated post {post_id}: {', '.join(fields)}")

    @staticmethod
    def _change(action_type: str, target: str, previous: Any, value: Any, test_mode: bool) -> Dict[str, Any]:
        return {
            "action_type": action_type,
            "target": target,
            "previous_value": previous,
            "new_value": value,
            "applied": not test_mode,
        }

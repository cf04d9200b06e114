"""Workflow definitions persisted in the workflows table."""

from __future__ import annotations

import json
import secrets
from typing import Any, Dict, List, Optional

from polytrans.core import database as db
from polytrans.logger import get_logger

logger = get_logger(__name__)

DEFAULT_TRIGGERS = {"on_translation_complete": True, "manual_only": False}


def normalize_workflow(workflow: Dict[str, Any]) -> Dict[str, Any]:
    """Fill in id, enabled, triggers and steps defaults."""
    normalized = dict(workflow)
    if not normalized.get("id"):
        normalized["id"] = f"wf_{secrets.token_hex(6)}"
    normalized.setdefault("name", normalized["id"])
    normalized["enabled"] = bool(normalized.get("enabled", True))
    normalized["triggers"] = {**DEFAULT_TRIGGERS, **(normalized.get("triggers") or {})}
    normalized.setdefault("steps", [])
    return normalized


class WorkflowStorage:

    def save(self, workflow: Dict[str, Any]) -> Dict[str, Any]:
        workflow = normalize_workflow(workflow)
        db.save_workflow(
            workflow["id"],
            workflow["name"],
            workflow.get("language") or "",
            workflow["enabled"],
            json.dumps(workflow, ensure_ascii=False),
        )
        logger.info(f"Saved workflow {workflow['id']} ('{workflow['name']}')")
        return workflow

    def get(self, workflow_id: str) -> Optional[Dict[str, Any]]:
        row = db.get_workflow(workflow_id)
        return self._from_row(row) if row else None

    def list(self, language: Optional[str] = None) -> List[Dict[str, Any]]:
        return [self._from_row(row) for row in db.get_all_workflows(language)]

    def delete(self, workflow_id: str) -> bool:
        deleted = db.delete_workflow(workflow_id)
        if deleted:
            logger.info(f"Deleted workflow {workflow_id}")
        return deleted

    def for_language(self, language: str) -> List[Dict[str, Any]]:
        """Enabled workflows for a language."""
        return [workflow for workflow in self.list(language) if workflow["enabled"]]

    @staticmethod
    def _from_row(row: Dict[str, Any]) -> Dict[str, Any]:
        try:
            workflow = json.loads(row.get("definition") or "{}")
        except json.JSONDecodeError:
            logger.error(f"Workflow {row['id']} has a corrupt definition")
            workflow = {}
        # Columns win over the stored document
        workflow.update({
            "id": row["id"],
            "name": row["name"],
            "language": row["language"],
            "enabled": bool(row["enabled"]),
        })
        return normalize_workflow(workflow)

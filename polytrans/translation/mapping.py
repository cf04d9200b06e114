"""Assistants mapping helpers: hop keys, fallback lookup and reading path settings."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from polytrans.config import get_setting

HOP_SEPARATOR = "_to_"


def hop_key(source: str, target: str) -> str:
    return f"{source}{HOP_SEPARATOR}{target}"


def path_hops(path: List[str]) -> List[Tuple[str, str]]:
    """Consecutive (source, target) pairs of a resolved path."""
    return list(zip(path, path[1:]))


def find_fallback_backend(mapping: Dict[str, Any]) -> Optional[Tuple[str, str]]:
    """First non-empty (hop key, backend id) entry of the mapping, in mapping order."""
    for key, backend_id in (mapping or {}).items():
        if backend_id and str(backend_id).strip():
            return key, str(backend_id).strip()
    return None


def load_path_settings(config: Dict[str, Any]) -> Tuple[List[Dict[str, Any]], Dict[str, str]]:
    """Routing rules and assistants mapping from settings, accepting the legacy key names."""
    rules = get_setting(config, "translation_path_rules", []) or []
    mapping = get_setting(config, "assistants_mapping", {}) or {}
    if not isinstance(rules, list):
        rules = []
    if not isinstance(mapping, dict):
        mapping = {}
    return rules, mapping

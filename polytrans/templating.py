"""
Prompt template rendering.

Templates are rendered with a sandboxed Jinja2 environment. The older
single-brace placeholder syntax ({title}, {original.meta.seo_title}) is
rewritten to Jinja expressions first, so both syntaxes can be mixed. Should
Jinja reject a template, placeholders are substituted with a plain regex pass.
"""

from __future__ import annotations

import json
import re
from typing import Any, Dict

from jinja2 import ChainableUndefined, TemplateError
from jinja2.sandbox import SandboxedEnvironment

from polytrans.logger import get_logger

logger = get_logger(__name__)

VARIABLE_PATH = r"[a-zA-Z_][a-zA-Z0-9_]*(?:\.[a-zA-Z_][a-zA-Z0-9_]*)*"
LEGACY_PLACEHOLDER = re.compile(r"\{(" + VARIABLE_PATH + r")\}")
# Same as above but not part of a {{ }} or {% %} Jinja tag
_BARE_LEGACY_PLACEHOLDER = re.compile(r"(?<![{%])\{(" + VARIABLE_PATH + r")\}(?![}%])")


def lookup_path(context: Dict[str, Any], path: str, default: Any = None) -> Any:
    """Resolve a dot-separated path through nested dicts and lists."""
    current: Any = context
    for part in path.split("."):
        if isinstance(current, dict) and part in current:
            current = current[part]
        elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            return default
    return current


def stringify(value: Any) -> str:
    """Render a context value for inclusion in a prompt."""
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _finalize(value: Any) -> Any:
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    if value is None:
        return ""
    return value


_environment = SandboxedEnvironment(
    undefined=ChainableUndefined,
    finalize=_finalize,
    autoescape=False,
    keep_trailing_newline=True,
)


def interpolate_legacy(template: str, context: Dict[str, Any]) -> str:
    """Replace {var.path} placeholders; unknown variables become empty strings."""
    return LEGACY_PLACEHOLDER.sub(lambda m: stringify(lookup_path(context, m.group(1))), template)


def render_template(template: str, context: Dict[str, Any]) -> str:
    if not template:
        return ""
    converted = _BARE_LEGACY_PLACEHOLDER.sub(r"{{ \1 }}", template)
    try:
        return _environment.from_string(converted).render(context)
    except TemplateError as e:
        logger.warning(f"Template rendering failed, using placeholder substitution: {e}")
        return interpolate_legacy(template, context)

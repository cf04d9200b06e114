"""
JSON extraction from free-form model output.

Models often wrap JSON in markdown fences or surround it with prose, so
extract_json tries several strategies in order before giving up.
"""

import json
import re
from typing import Any, Dict, Optional

_JSON_FENCE = re.compile(r"```json\s*(.*?)\s*```", re.DOTALL)
_ANY_FENCE = re.compile(r"```\s*(.*?)\s*```", re.DOTALL)


def match_json_object(text: str) -> Optional[str]:
    """
    Extract the first balanced JSON object from mixed text using brace matching.

    Args:
        text: Text potentially containing a JSON object

    Returns:
        Extracted JSON object string, or None if not found
    """
    if not text:
        return None

    depth = 0
    start = -1
    in_string = False
    escape_next = False

    for i, char in enumerate(text):
        if in_string:
            if escape_next:
                escape_next = False
            elif char == '\\':
                escape_next = True
            elif char == '"':
                in_string = False
            continue

        if char == '"' and depth > 0:
            in_string = True
        elif char == '{':
            if depth == 0:
                start = i
            depth += 1
        elif char == '}' and depth > 0:
            depth -= 1
            if depth == 0:
                return text[start:i + 1]

    return None


def _loads_object(text: Optional[str]) -> Optional[Dict[str, Any]]:
    if not text:
        return None
    try:
        result = json.loads(text)
    except json.JSONDecodeError:
        return None
    return result if isinstance(result, dict) else None


def extract_json(text: Any) -> Optional[Dict[str, Any]]:
    """
    Safely parse a JSON object from potentially malformed model output.

    Tries, in order:
    1. Direct parse
    2. ```json fenced block
    3. Any ``` fenced block
    4. First balanced {...} in the text
    5. Everything between the first "{" and the last "}"

    Returns:
        Parsed dict or None on failure
    """
    if isinstance(text, dict):
        return text
    if not isinstance(text, str) or not text.strip():
        return None

    text = text.strip()

    result = _loads_object(text)
    if result is not None:
        return result

    for pattern in (_JSON_FENCE, _ANY_FENCE):
        match = pattern.search(text)
        if match:
            result = _loads_object(match.group(1))
            if result is not None:
                return result

    result = _loads_object(match_json_object(text))
    if result is not None:
        return result

    first, last = text.find("{"), text.rfind("}")
    if first != -1 and last > first:
        return _loads_object(text[first:last + 1])

    return None

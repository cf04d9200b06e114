"""
Value types that flow through the translation engine.

- ContentBundle: the post content a hop receives and returns
- StepResult: the explicit success/failure result every backend returns
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from polytrans.ai.exceptions import ErrorKind


@dataclass(frozen=True)
class ContentBundle:
    """Title, body, excerpt, meta and featured image of one post. Never mutated in place."""

    title: str = ""
    content: str = ""
    excerpt: str = ""
    meta: Dict[str, Any] = field(default_factory=dict)
    featured_image: Optional[Dict[str, Any]] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], fallback: Optional["ContentBundle"] = None) -> "ContentBundle":
        """
        Build a bundle from a dict, e.g. a decoded vendor response.

        Args:
            data: Dict with any of title/content/excerpt/meta/featured_image.
            fallback: Bundle whose values fill in keys missing from data.
        """
        base = fallback or cls()
        meta = data.get("meta", base.meta)
        # Empty PHP-style arrays arrive as lists
        if not isinstance(meta, dict):
            meta = {}
        return cls(
            title=_as_text(data.get("title", base.title)),
            content=_as_text(data.get("content", base.content)),
            excerpt=_as_text(data.get("excerpt", base.excerpt)),
            meta=dict(meta),
            featured_image=data.get("featured_image", base.featured_image),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "content": self.content,
            "excerpt": self.excerpt,
            "meta": dict(self.meta),
            "featured_image": dict(self.featured_image) if self.featured_image else None,
        }

    def replace(self, **changes) -> "ContentBundle":
        return dataclasses.replace(self, **changes)


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


@dataclass
class StepResult:
    """Outcome of one backend call; failures carry a code, a kind and a readable message."""

    success: bool
    bundle: Optional[ContentBundle] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    kind: Optional[ErrorKind] = None
    hop: Optional[str] = None
    backend_id: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, bundle: ContentBundle, **details) -> "StepResult":
        return cls(success=True, bundle=bundle, details=details)

    @classmethod
    def fail(cls, error: str, code: str, kind: ErrorKind, **details) -> "StepResult":
        return cls(success=False, error=error, error_code=code, kind=kind, details=details)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "translated_content": self.bundle.to_dict() if self.bundle else None,
            "error": self.error,
            "error_code": self.error_code,
            "kind": self.kind.value if self.kind else None,
            "hop": self.hop,
            "backend_id": self.backend_id,
        }

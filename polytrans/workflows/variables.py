"""
Variable context handling for workflows.

The variable context is a plain dict threaded through the steps of a run.
Prompts reference it with {{ var.path }} or the older {var.path} syntax.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from markupsafe import Markup

from polytrans.ai.response_parser import extract_json
from polytrans.templating import LEGACY_PLACEHOLDER, lookup_path, render_template

_MISSING = object()
EXCERPT_WORDS = 30
SUMMARY_CONTENT_CHARS = 500


class VariableManager:

    def interpolate(self, template: str, context: Dict[str, Any]) -> str:
        return render_template(template, context)

    def get_variable_value(self, context: Dict[str, Any], path: str, default: Any = None) -> Any:
        return lookup_path(context, path, default)

    def set_variable_value(self, context: Dict[str, Any], path: str, value: Any) -> None:
        """Set a dot-path value, creating intermediate dicts as needed."""
        parts = path.split(".")
        current = context
        for part in parts[:-1]:
            if not isinstance(current.get(part), dict):
                current[part] = {}
            current = current[part]
        current[parts[-1]] = value

    def variable_exists(self, context: Dict[str, Any], path: str) -> bool:
        return lookup_path(context, path, _MISSING) is not _MISSING

    def missing_variables(self, context: Dict[str, Any], paths: List[str]) -> List[str]:
        return [path for path in paths if not self.variable_exists(context, path)]

    @staticmethod
    def template_variables(template: str) -> List[str]:
        """Placeholder paths used by a template in {var.path} form."""
        return list(dict.fromkeys(LEGACY_PLACEHOLDER.findall(template or "")))

    @staticmethod
    def parse_json_response(response: str) -> Optional[Dict[str, Any]]:
        return extract_json(response)


def plain_text(html: str) -> str:
    return Markup(html or "").striptags()


def article_summary(post: Dict[str, Any]) -> Dict[str, Any]:
    """Compact view of a published post for prompts that reference recent articles."""
    text = plain_text(post.get("content"))
    excerpt = post.get("excerpt") or " ".join(text.split()[:EXCERPT_WORDS])
    return {
        "id": post.get("id"),
        "title": post.get("title") or "",
        "excerpt": excerpt,
        "content": post.get("content") or "",
        "language": post.get("language"),
        "date": post.get("published_at") or post.get("created_at"),
        "word_count": len(text.split()),
    }


def format_articles(articles: List[Dict[str, Any]]) -> str:
    if not articles:
        return "No recent articles available."
    entries = []
    for index, article in enumerate(articles, start=1):
        entries.append(
            f"{index}. **{article['title']}**\n"
            f"   - Post ID: {article['id']}\n"
            f"   - Excerpt: {article['excerpt']}\n"
            f"   - Opening: {plain_text(article['content'])[:SUMMARY_CONTENT_CHARS]}\n"
            f"   - Word count: {article['word_count']}\n"
        )
    return "\n".join(entries)


def build_post_context(post: Dict[str, Any], original_post: Optional[Dict[str, Any]] = None,
                       recent_posts: Optional[List[Dict[str, Any]]] = None, **extra: Any) -> Dict[str, Any]:
    """
    Initial variable context for a workflow run over a post.

    The post's own fields sit at the top level. When the untranslated source
    post is known it is available as original_post, and the meta of both
    posts as original_meta and translated_meta. recent_posts, when given,
    become recent_articles with a count and a prompt-ready summary.
    """
    context: Dict[str, Any] = {
        "post_id": post.get("id"),
        "title": post.get("title") or "",
        "content": post.get("content") or "",
        "excerpt": post.get("excerpt") or "",
        "meta": dict(post.get("meta") or {}),
        "language": post.get("language"),
        "post": {
            "id": post.get("id"),
            "title": post.get("title") or "",
            "content": post.get("content") or "",
            "excerpt": post.get("excerpt") or "",
            "status": post.get("status"),
            "published_at": post.get("published_at"),
        },
        "previous_steps": {},
    }
    if original_post:
        context["original_post"] = {
            "id": original_post.get("id"),
            "title": original_post.get("title") or "",
            "content": original_post.get("content") or "",
            "excerpt": original_post.get("excerpt") or "",
            "meta": dict(original_post.get("meta") or {}),
            "language": original_post.get("language"),
        }
        context["source_language"] = original_post.get("language")
        context["original_meta"] = dict(original_post.get("meta") or {})
        context["translated_meta"] = dict(post.get("meta") or {})
    if recent_posts is not None:
        articles = [article_summary(p) for p in recent_posts]
        context["recent_articles"] = articles
        context["recent_articles_count"] = len(articles)
        context["recent_articles_summary"] = format_articles(articles)
    context.update(extra)
    return context

"""
Translation jobs for stored posts.

TranslationManager translates one post into one target language: it tracks the
job in post_translations, runs the multi-hop path, saves the result as a new
post linked to the original and starts the workflows of the target language.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from polytrans.core import database as db
from polytrans.logger import get_logger
from polytrans.models import ContentBundle
from polytrans.translation.path_executor import TranslationPathExecutor

logger = get_logger(__name__)

TRANSLATED_POST_STATUS = "draft"


@dataclass
class TranslationOutcome:
    success: bool
    post_id: Any
    source_lang: str
    target_lang: str
    translated_post_id: Optional[int] = None
    path: List[str] = field(default_factory=list)
    error: Optional[str] = None
    error_code: Optional[str] = None
    failed_hop: Optional[str] = None
    validation_errors: Dict[str, str] = field(default_factory=dict)
    workflow_executions: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "post_id": self.post_id,
            "source_lang": self.source_lang,
            "target_lang": self.target_lang,
            "translated_post_id": self.translated_post_id,
            "path": list(self.path),
            "error": self.error,
            "error_code": self.error_code,
            "failed_hop": self.failed_hop,
            "validation_errors": dict(self.validation_errors),
            "workflow_executions": list(self.workflow_executions),
        }


class TranslationManager:

    def __init__(self, path_executor: TranslationPathExecutor, workflow_manager=None):
        self.path_executor = path_executor
        self.workflow_manager = workflow_manager

    def process_translation(self, post_id: Any, source_lang: str, target_lang: str,
                            config: Dict[str, Any]) -> TranslationOutcome:
        """
        Translate a post and store the translation as a new post.

        Args:
            post_id: Id of the post to translate.
            source_lang: Language of the post.
            target_lang: Language to translate into.
            config: Current settings.

        Returns:
            TranslationOutcome; failures name the failing hop where there is one.
        """
        post = db.get_post(post_id)
        if post is None:
            logger.error(f"Translation requested for missing post {post_id}")
            return TranslationOutcome(
                success=False,
                post_id=post_id,
                source_lang=source_lang,
                target_lang=target_lang,
                error=f"Post {post_id} not found",
                error_code="post_not_found",
            )

        db.set_translation_status(post_id, target_lang, "started")
        logger.info(f"Translating post {post_id} from {source_lang} to {target_lang}")

        bundle = ContentBundle.from_dict(post)
        db.set_translation_status(post_id, target_lang, "processing")
        try:
            result = self.path_executor.execute(bundle, source_lang, target_lang, config)
        except Exception as e:
            db.set_translation_status(post_id, target_lang, "failed", error=f"Translation crashed: {e}")
            raise

        if not result.success:
            db.set_translation_status(post_id, target_lang, "failed", error=result.error)
            return TranslationOutcome(
                success=False,
                post_id=post_id,
                source_lang=source_lang,
                target_lang=target_lang,
                path=result.path,
                error=result.error,
                error_code=result.error_code,
                failed_hop=result.failed_hop,
                validation_errors=result.validation_errors,
            )

        translated = result.bundle
        translated_post_id = db.create_post(
            language=target_lang,
            title=translated.title,
            content=translated.content,
            excerpt=translated.excerpt,
            meta=translated.meta,
            featured_image=translated.featured_image,
            status=TRANSLATED_POST_STATUS,
            source_post_id=post_id,
        )
        db.set_translation_status(post_id, target_lang, "completed", translated_post_id=translated_post_id)
        logger.info(f"Post {post_id} translated to {target_lang} as post {translated_post_id}")

        outcome = TranslationOutcome(
            success=True,
            post_id=post_id,
            source_lang=source_lang,
            target_lang=target_lang,
            translated_post_id=translated_post_id,
            path=result.path,
        )
        if self.workflow_manager is not None:
            starts = self.workflow_manager.trigger_workflows(post_id, translated_post_id, target_lang, config)
            outcome.workflow_executions = [start.to_dict() for start in starts]
        return outcome

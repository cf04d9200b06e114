"""
Multi-hop translation.

TranslationPathExecutor resolves the path for a language pair, picks a
backend for every hop, validates them all before anything runs, then executes
the hops in order, feeding each hop's output into the next. The first failing
hop stops the run.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from polytrans.ai.exceptions import ErrorKind
from polytrans.logger import get_logger
from polytrans.models import ContentBundle
from polytrans.translation.mapping import find_fallback_backend, hop_key, load_path_settings, path_hops
from polytrans.translation.path_resolver import resolve_path
from polytrans.translation.path_validator import PathValidator
from polytrans.translation.step_executor import StepExecutor

logger = get_logger(__name__)


@dataclass
class HopRecord:
    source: str
    target: str
    backend_id: str = ""
    fallback: bool = False
    success: Optional[bool] = None
    error: Optional[str] = None

    @property
    def key(self) -> str:
        return hop_key(self.source, self.target)


@dataclass
class PathResult:
    success: bool
    bundle: Optional[ContentBundle] = None
    path: List[str] = field(default_factory=list)
    hops: List[HopRecord] = field(default_factory=list)
    error: Optional[str] = None
    error_code: Optional[str] = None
    kind: Optional[ErrorKind] = None
    failed_hop: Optional[str] = None
    validation_errors: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "translated_content": self.bundle.to_dict() if self.bundle else None,
            "error": self.error,
            "error_code": self.error_code,
            "kind": self.kind.value if self.kind else None,
            "path": list(self.path),
            "hops": [asdict(hop) for hop in self.hops],
            "failed_hop": self.failed_hop,
            "validation_errors": dict(self.validation_errors),
        }


class TranslationPathExecutor:

    def __init__(self, validator: PathValidator, step_executor: StepExecutor):
        self.validator = validator
        self.step_executor = step_executor

    def plan(self, path: List[str], mapping: Dict[str, Any]) -> Tuple[Dict[str, str], List[HopRecord]]:
        """
        Choose the backend for every hop.

        A hop without its own mapping entry borrows the first non-empty entry of
        the mapping. Hops left without any backend are kept with an empty id so
        that validation reports them.
        """
        effective: Dict[str, str] = {}
        hops: List[HopRecord] = []
        for source, target in path_hops(path):
            key = hop_key(source, target)
            backend_id = (mapping or {}).get(key)
            hop = HopRecord(source=source, target=target)
            if backend_id:
                hop.backend_id = str(backend_id)
            else:
                fallback = find_fallback_backend(mapping)
                if fallback:
                    fallback_key, fallback_id = fallback
                    logger.warning(f"No specific mapping for {key}, using fallback: {fallback_key} ({fallback_id})")
                    hop.backend_id = fallback_id
                    hop.fallback = True
            if hop.backend_id:
                effective[key] = hop.backend_id
            hops.append(hop)
        return effective, hops

    def execute(self, bundle: ContentBundle, source_lang: str, target_lang: str,
                config: Dict[str, Any]) -> PathResult:
        if source_lang == target_lang:
            return PathResult(
                success=False,
                error=f"Source and target language are both '{source_lang}'",
                error_code="same_language",
                kind=ErrorKind.ROUTING,
            )
        rules, mapping = load_path_settings(config)
        path = resolve_path(source_lang, target_lang, rules)

        logger.info(f"Translation path for {source_lang} -> {target_lang}: {' -> '.join(path)}")

        effective, hops = self.plan(path, mapping)
        validation = self.validator.validate_path(path, effective, config)
        if not validation.valid:
            return PathResult(
                success=False,
                path=path,
                hops=hops,
                error=f"Path validation failed: {validation.summary()}",
                error_code="path_validation_failed",
                kind=ErrorKind.CONFIGURATION,
                validation_errors=validation.errors,
            )

        current = bundle
        for hop in hops:
            result = self.step_executor.execute_step(current, hop.source, hop.target, hop.backend_id, config)
            hop.success = result.success
            if not result.success:
                hop.error = result.error
                logger.error(f"Translation path {' -> '.join(path)} aborted at {hop.key}")
                return PathResult(
                    success=False,
                    path=path,
                    hops=hops,
                    error=f"Translation step {hop.source} -> {hop.target} failed ({hop.backend_id}): {result.error}",
                    error_code=result.error_code,
                    kind=result.kind,
                    failed_hop=hop.key,
                )
            current = result.bundle

        logger.info(f"Translation {source_lang} -> {target_lang} completed in {len(hops)} step(s)")
        return PathResult(success=True, bundle=current, path=path, hops=hops)

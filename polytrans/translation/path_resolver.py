"""
Translation path resolution.

Routing rules decide whether a translation goes straight from source to
target or through one intermediate language. Each rule is scored against the
requested pair; the best score wins and, at equal score, the later rule wins.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Sequence, Union

WILDCARD = "all"
NO_INTERMEDIATE = "none"


@dataclass(frozen=True)
class RoutingRule:
    source: str
    target: str
    intermediate: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RoutingRule":
        return cls(
            source=str(data.get("source") or ""),
            target=str(data.get("target") or ""),
            intermediate=str(data.get("intermediate") or "").strip(),
        )

    def to_dict(self) -> Dict[str, str]:
        return {"source": self.source, "target": self.target, "intermediate": self.intermediate}


RuleLike = Union[RoutingRule, Dict[str, Any]]


def _as_rule(rule: RuleLike) -> RoutingRule:
    return rule if isinstance(rule, RoutingRule) else RoutingRule.from_dict(rule)


def score_rule(rule: RoutingRule, source: str, target: str) -> int:
    """
    Score a rule against a language pair.

    Returns:
        3 for an exact match on both sides, 2 when one side is exact and the
        other is the wildcard, 1 for wildcard on both sides, 0 otherwise.
    """
    source_exact = rule.source == source
    target_exact = rule.target == target
    source_any = rule.source == WILDCARD
    target_any = rule.target == WILDCARD

    if source_exact and target_exact:
        return 3
    if (source_exact and target_any) or (source_any and target_exact):
        return 2
    if source_any and target_any:
        return 1
    return 0


def resolve_path(source: str, target: str, rules: Sequence[RuleLike]) -> List[str]:
    """
    Compute the ordered list of languages a translation passes through.

    Args:
        source: Source language code.
        target: Target language code.
        rules: Routing rules in priority order. Never modified.

    Returns:
        [source, target] or [source, intermediate, target]. A pair of equal
        languages resolves to the direct path; callers decide whether to run it.
    """
    if source == target:
        return [source, target]

    best_rule = None
    best_score = 0
    for rule in rules or []:
        rule = _as_rule(rule)
        score = score_rule(rule, source, target)
        # >= so that a later rule replaces an earlier one at equal score
        if score > 0 and score >= best_score:
            best_rule = rule
            best_score = score

    if best_rule is None:
        return [source, target]

    intermediate = best_rule.intermediate
    if not intermediate or intermediate.lower() == NO_INTERMEDIATE or intermediate in (source, target):
        return [source, target]

    return [source, intermediate, target]

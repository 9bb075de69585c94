"""
Reference classifier that runs advisory references through a rule chain.

Rules are applied in priority order (lowest first) and the first rule that
recognises a reference decides its kind. References no rule recognises are
dropped. The classifier is a pure partition: it keeps the advisory's order,
keeps duplicates and never rewrites URLs.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from ghsa_db.ingestion.osv_parser import Reference
from .rules import (
    COMMIT,
    PULL_REQUEST,
    ClassificationRule,
    get_default_rules,
    pattern_rules_from_config,
)

logger = logging.getLogger(__name__)


@dataclass
class ClassifiedReferences:
    """Reference URLs of one advisory, bucketed by kind."""
    commits: List[str] = field(default_factory=list)
    pull_requests: List[str] = field(default_factory=list)


class ReferenceClassifier:
    """
    Deterministic rule chain for reference classification.

    Rules are evaluated in priority order (0 is highest priority).
    First rule that returns a kind determines the bucket.
    """

    def __init__(self, rules: Optional[List[ClassificationRule]] = None):
        """
        Initialize the classifier.

        Args:
            rules: Rules to evaluate. If None, uses the default rules.
        """
        self.rules = sorted(rules or get_default_rules(), key=lambda r: r.priority)

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]]) -> "ReferenceClassifier":
        """
        Build a classifier from the ``classification`` config section.

        Raises:
            ValueError: If the section names an unknown kind or a bad regex
        """
        config = config or {}
        rules = get_default_rules(config.get("tag_kinds"))
        rules.extend(pattern_rules_from_config(config.get("extra_patterns") or []))
        return cls(rules)

    def kind_of(self, reference: Reference) -> Optional[str]:
        """Return the kind of one reference, or None if no rule matches."""
        for rule in self.rules:
            kind = rule.classify(reference)
            if kind:
                return kind
        return None

    def classify(self, references: Optional[Iterable[Reference]]) -> ClassifiedReferences:
        """
        Partition an advisory's references into commits and pull requests.

        Args:
            references: Parsed references (None is treated as empty)

        Returns:
            ClassifiedReferences in document reference order
        """
        result = ClassifiedReferences()
        for reference in references or []:
            kind = self.kind_of(reference)
            if kind == COMMIT:
                result.commits.append(reference.url)
            elif kind == PULL_REQUEST:
                result.pull_requests.append(reference.url)
        return result

    def explain(self, reference: Reference) -> Dict[str, Any]:
        """
        Get a trace of how each rule treated a reference.

        Returns:
            Dictionary with the winning kind, the deciding rule and a per-rule trace
        """
        trace = []
        decided_kind = None
        decided_by = None

        for rule in self.rules:
            kind = rule.classify(reference)
            trace.append({
                "rule_id": rule.rule_id,
                "priority": rule.priority,
                "matched": kind is not None,
                "result": kind,
            })
            if kind and decided_kind is None:
                decided_kind = kind
                decided_by = rule.rule_id

        logger.debug("Reference %s classified as %s by %s", reference.url, decided_kind, decided_by)
        return {
            "url": reference.url,
            "type": reference.type,
            "kind": decided_kind,
            "decided_by": decided_by,
            "evaluation_trace": trace,
        }

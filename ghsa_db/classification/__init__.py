"""
Reference classification for OSV advisories.

Buckets an advisory's reference URLs into commits and pull requests using a
pluggable, priority-ordered rule chain.
"""
from .classifier import ClassifiedReferences, ReferenceClassifier
from .rules import (
    COMMIT,
    PULL_REQUEST,
    ClassificationRule,
    TypeTagRule,
    UrlPatternRule,
    get_default_rules,
)

__all__ = [
    "COMMIT",
    "PULL_REQUEST",
    "ClassificationRule",
    "ClassifiedReferences",
    "ReferenceClassifier",
    "TypeTagRule",
    "UrlPatternRule",
    "get_default_rules",
]

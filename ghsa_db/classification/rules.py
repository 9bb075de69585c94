"""
Rule definitions for reference classification.

Each rule looks at one advisory reference and returns the kind of artifact it
points to (commit or pull request), or None if the rule doesn't apply.
"""
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit

from ghsa_db.ingestion.osv_parser import Reference

COMMIT = "commit"
PULL_REQUEST = "pull_request"
KINDS = (COMMIT, PULL_REQUEST)

# Tags that name a kind outright. OSV's own tags (FIX, WEB, GIT, ...) are
# too broad for this and fall through to the URL rules.
DEFAULT_TAG_KINDS = {
    "COMMIT": COMMIT,
    "PULL_REQUEST": PULL_REQUEST,
    "MERGE_REQUEST": PULL_REQUEST,
}

_HEX_SHA = r"[0-9a-fA-F]{4,40}(?![0-9a-zA-Z])"


class ClassificationRule(ABC):
    """Base class for all reference classification rules."""

    def __init__(self, rule_id: str, priority: int):
        self.rule_id = rule_id
        self.priority = priority

    @abstractmethod
    def classify(self, reference: Reference) -> Optional[str]:
        """
        Evaluate the rule against one reference.

        Returns COMMIT or PULL_REQUEST if the rule applies, None otherwise.
        """
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.rule_id!r}, priority={self.priority})"


class TypeTagRule(ClassificationRule):
    """C0: trust an explicit reference type tag when it names a kind."""

    def __init__(self, tag_kinds: Optional[Dict[str, str]] = None):
        super().__init__("C0:type_tag", 0)
        self.tag_kinds = {k.upper(): v for k, v in (tag_kinds or DEFAULT_TAG_KINDS).items()}
        for kind in self.tag_kinds.values():
            _check_kind(kind)

    def classify(self, reference: Reference) -> Optional[str]:
        if not reference.url or not reference.type:
            return None
        return self.tag_kinds.get(reference.type.upper())


class UrlPatternRule(ClassificationRule):
    """
    Match the URL against path-shape regexes for one hosting platform.

    Pull-request patterns are tried before commit patterns so that a URL such
    as ``.../pull/42/commits/<sha>`` is reported as a pull request.
    """

    def __init__(
        self,
        rule_id: str,
        priority: int,
        pull_request_patterns: Optional[List[str]] = None,
        commit_patterns: Optional[List[str]] = None,
        host_suffix: Optional[str] = None,
    ):
        super().__init__(rule_id, priority)
        self.host_suffix = host_suffix.lower() if host_suffix else None
        self.pull_request_patterns = [re.compile(p) for p in pull_request_patterns or []]
        self.commit_patterns = [re.compile(p) for p in commit_patterns or []]

    def classify(self, reference: Reference) -> Optional[str]:
        if not reference.url:
            return None

        target = self._match_target(reference.url)
        if target is None:
            return None

        if any(p.search(target) for p in self.pull_request_patterns):
            return PULL_REQUEST
        if any(p.search(target) for p in self.commit_patterns):
            return COMMIT
        return None

    def _match_target(self, url: str) -> Optional[str]:
        """Path plus query of the URL, or None if the host is out of scope."""
        try:
            parts = urlsplit(url)
        except ValueError:
            return None

        if self.host_suffix:
            host = (parts.hostname or "").lower()
            if host != self.host_suffix and not host.endswith("." + self.host_suffix):
                return None

        return f"{parts.path}?{parts.query}" if parts.query else parts.path


def github_rule() -> UrlPatternRule:
    """C1: GitHub style paths, also used by Gitea, Forgejo and Codeberg."""
    return UrlPatternRule(
        "C1:github",
        10,
        pull_request_patterns=[r"/pulls?/\d+(?:[/?]|$)"],
        commit_patterns=[rf"^(?!.*/pulls?/).*/commits?/{_HEX_SHA}"],
    )


def gitlab_rule() -> UrlPatternRule:
    """C2: GitLab merge requests and commits (``/-/`` scoped routes)."""
    return UrlPatternRule(
        "C2:gitlab",
        20,
        pull_request_patterns=[r"/(?:-/)?merge_requests/\d+(?:[/?]|$)"],
        commit_patterns=[rf"/-/commit/{_HEX_SHA}"],
    )


def bitbucket_rule() -> UrlPatternRule:
    """C3: Bitbucket pull requests (commits share the ``/commits/`` route with C1)."""
    return UrlPatternRule(
        "C3:bitbucket",
        30,
        pull_request_patterns=[r"/pull-requests/\d+(?:[/?]|$)"],
    )


def gitiles_rule() -> UrlPatternRule:
    """C4: Gitiles commit views on googlesource.com."""
    return UrlPatternRule(
        "C4:gitiles",
        40,
        commit_patterns=[rf"/\+/{_HEX_SHA}"],
        host_suffix="googlesource.com",
    )


def cgit_rule() -> UrlPatternRule:
    """C5: cgit commit views (``/commit/?id=<sha>``), e.g. git.kernel.org."""
    return UrlPatternRule(
        "C5:cgit",
        50,
        commit_patterns=[rf"/commit/?\?(?:.*&)?id={_HEX_SHA}"],
    )


def pattern_rules_from_config(entries: List[Dict[str, Any]], start_priority: int = 100) -> List[UrlPatternRule]:
    """
    Build extra URL rules from configuration.

    Each entry is ``{"kind": "commit" | "pull_request", "pattern": <regex>}``
    with an optional ``host`` suffix and ``rule_id``.

    Raises:
        ValueError: If an entry has an unknown kind or an invalid regex
    """
    rules = []
    for i, entry in enumerate(entries):
        kind = _check_kind(entry.get("kind"))
        pattern = entry.get("pattern")
        if not pattern:
            raise ValueError(f"classification pattern #{i} has no 'pattern'")
        try:
            re.compile(pattern)
        except re.error as e:
            raise ValueError(f"classification pattern #{i} is not a valid regex: {e}") from e

        rules.append(UrlPatternRule(
            entry.get("rule_id", f"X{i}:custom"),
            start_priority + i,
            pull_request_patterns=[pattern] if kind == PULL_REQUEST else None,
            commit_patterns=[pattern] if kind == COMMIT else None,
            host_suffix=entry.get("host"),
        ))
    return rules


def get_default_rules(tag_kinds: Optional[Dict[str, str]] = None) -> List[ClassificationRule]:
    """Get the default set of classification rules in priority order."""
    return [
        TypeTagRule(tag_kinds),
        github_rule(),
        gitlab_rule(),
        bitbucket_rule(),
        gitiles_rule(),
        cgit_rule(),
    ]


def _check_kind(kind: Any) -> str:
    if kind not in KINDS:
        raise ValueError(f"unknown reference kind {kind!r}; expected one of {', '.join(KINDS)}")
    return kind

from __future__ import annotations
"""Core domain entities shared by the pinning engine, use cases and adapters.

These data models are framework-agnostic: the classifier, resolver, scheduler
and patch applier exchange only these types.
"""

from dataclasses import dataclass, field
from enum import Enum


COMMIT_HASH_LENGTH = 40
LATEST_ALIAS = "latest"


@dataclass(frozen=True, slots=True)
class ActionIdentity:
    """Owner/name pair identifying a reusable action.

    Attributes:
        owner: Account or organization owning the action repository.
        name: Repository name, optionally followed by a sub-path
            (e.g. ``codeql-action/init``).
    """

    owner: str
    name: str

    @classmethod
    def parse(cls, value: str) -> "ActionIdentity":
        normalized = value.strip()
        owner, separator, name = normalized.partition("/")
        if not separator or not owner or not name:
            raise ValueError(f"Invalid action identity '{value}': expected owner/name")
        return cls(owner=owner, name=name)

    @property
    def repository(self) -> str:
        """`owner/repo` slug of the repository hosting this action."""
        repo_name = self.name.split("/", 1)[0]
        return f"{self.owner}/{repo_name}"

    def __str__(self) -> str:
        return f"{self.owner}/{self.name}"


@dataclass(frozen=True, slots=True)
class ActionReference:
    """Raw `uses:` invocation as it appears in one workflow step."""

    raw: str
    identity: ActionIdentity | None
    ref: str | None


@dataclass(frozen=True, slots=True)
class InvocationSpan:
    """Location of one step's `uses:` value in the document source.

    `start`/`end` are character offsets of the scalar as written, quotes
    included; `value` is the parsed string.
    """

    value: str
    start: int
    end: int


@dataclass(frozen=True, slots=True)
class PinRequest:
    """Unit of resolution work, keyed by `(identity, ref)`."""

    identity: ActionIdentity
    ref: str

    @property
    def key(self) -> str:
        return f"{self.identity}@{self.ref}"


class ResolutionErrorKind(str, Enum):
    UNRESOLVED = "unresolved"
    NOT_FOUND = "not_found"
    INFRASTRUCTURE = "infrastructure"


@dataclass(frozen=True, slots=True)
class ResolutionResult:
    """Outcome of resolving one distinct `PinRequest`.

    Attributes:
        request: The request that produced this result.
        commit_hash: 40-hex content hash, or `None` when resolution failed.
        resolved_ref: Ref label that was actually resolved (may differ from
            the requested ref after a prefix-match fallback).
        error_kind: Failure category, or `None` on success.
        error: Human-readable failure detail.
    """

    request: PinRequest
    commit_hash: str | None
    resolved_ref: str
    error_kind: ResolutionErrorKind | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error_kind is None and self.commit_hash is not None


class ClassificationKind(str, Enum):
    SKIP = "skip"
    ALREADY_PINNED = "already_pinned"
    NEEDS_RESOLUTION = "needs_resolution"
    MISSING_REF = "missing_ref"
    PARSE_ERROR = "parse_error"


@dataclass(frozen=True, slots=True)
class Classification:
    """Classification of one step invocation.

    `request` is set only for `NEEDS_RESOLUTION`; `uses_latest` is purely
    informational.
    """

    reference: ActionReference
    kind: ClassificationKind
    request: PinRequest | None = None
    uses_latest: bool = False
    reason: str = ""


@dataclass(slots=True)
class WorkflowPinSummary:
    """Per-document (or aggregated per-repository) tally."""

    found: int = 0
    pinned: int = 0
    already_pinned: int = 0
    skipped: int = 0
    with_latest: int = 0
    without_ref: int = 0
    unresolved: int = 0
    changed: bool = False
    errors: list[str] = field(default_factory=list)

    def merge(self, other: "WorkflowPinSummary") -> None:
        self.found += other.found
        self.pinned += other.pinned
        self.already_pinned += other.already_pinned
        self.skipped += other.skipped
        self.with_latest += other.with_latest
        self.without_ref += other.without_ref
        self.unresolved += other.unresolved
        self.changed = self.changed or other.changed
        self.errors.extend(other.errors)

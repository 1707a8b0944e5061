from __future__ import annotations
"""Classify `uses:` step invocations of a workflow document.

Classification is pure: it never touches the network or the disk.
"""

import logging
import re
from collections.abc import Iterable, Iterator, Mapping

import yaml

from action_pinner.domain.entities import (
    LATEST_ALIAS,
    ActionIdentity,
    ActionReference,
    Classification,
    ClassificationKind,
    InvocationSpan,
    PinRequest,
    WorkflowPinSummary,
)
from action_pinner.domain.errors import ActionReferenceParseError, WorkflowParseError


LOGGER = logging.getLogger(__name__)

COMMIT_HASH_PATTERN = re.compile(r"[0-9a-f]{40}")
LOCAL_PREFIXES = ("./", "../")
DOCKER_PREFIX = "docker://"
_STR_TAG = "tag:yaml.org,2002:str"


def parse_workflow(text: str) -> object:
    """Parse workflow YAML text into plain Python containers."""
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as error:
        raise WorkflowParseError(f"Invalid workflow YAML: {error}") from error


def iter_step_invocations(document: object) -> Iterator[str]:
    """Yield every non-empty `jobs.<job>.steps[].uses` string in document order.

    Unrecognized shapes yield nothing.
    """
    if not isinstance(document, Mapping):
        return
    jobs = document.get("jobs")
    if not isinstance(jobs, Mapping):
        return

    for job in jobs.values():
        if not isinstance(job, Mapping):
            continue
        steps = job.get("steps")
        if not isinstance(steps, list):
            continue
        for step in steps:
            if not isinstance(step, Mapping):
                continue
            uses = step.get("uses")
            if isinstance(uses, str) and uses:
                yield uses


def locate_step_invocations(text: str) -> list[InvocationSpan]:
    """Return the source span of every `jobs.<job>.steps[].uses` string, in text order.

    Works on the composed node tree, so comments, block scalars and other
    keys never yield a span.

    Raises:
        WorkflowParseError: the text is not valid YAML.
    """
    try:
        root = yaml.compose(text, Loader=yaml.SafeLoader)
    except yaml.YAMLError as error:
        raise WorkflowParseError(f"Invalid workflow YAML: {error}") from error

    spans: dict[int, InvocationSpan] = {}
    jobs = _mapping_child(root, "jobs")
    if not isinstance(jobs, yaml.MappingNode):
        return []

    for _, job in jobs.value:
        steps = _mapping_child(job, "steps")
        if not isinstance(steps, yaml.SequenceNode):
            continue
        for step in steps.value:
            uses = _mapping_child(step, "uses")
            if not isinstance(uses, yaml.ScalarNode) or uses.tag != _STR_TAG or not uses.value:
                continue
            # Aliased steps share one node; keep a single span per source position.
            spans[uses.start_mark.index] = InvocationSpan(
                value=uses.value,
                start=uses.start_mark.index,
                end=uses.end_mark.index,
            )

    return [spans[index] for index in sorted(spans)]


def _mapping_child(node: yaml.Node | None, key: str) -> yaml.Node | None:
    if not isinstance(node, yaml.MappingNode):
        return None
    child = None
    for key_node, value_node in node.value:
        # Last duplicate key wins, as with safe_load.
        if isinstance(key_node, yaml.ScalarNode) and key_node.value == key:
            child = value_node
    return child


def parse_action_reference(uses: str) -> tuple[ActionIdentity, str | None]:
    """Split `owner/name@ref` into identity and ref.

    Returns a `None` ref when the invocation carries no `@` at all.

    Raises:
        ActionReferenceParseError: more than one `@`, an empty ref or an
            identity that is not `owner/name`.
    """
    parts = uses.strip().split("@")
    if len(parts) > 2:
        raise ActionReferenceParseError(f"Invalid action reference '{uses}': more than one '@'")

    try:
        identity = ActionIdentity.parse(parts[0])
    except ValueError as error:
        raise ActionReferenceParseError(str(error)) from error

    if len(parts) == 1:
        return identity, None

    ref = parts[1].strip()
    if not ref:
        raise ActionReferenceParseError(f"Invalid action reference '{uses}': empty ref")
    return identity, ref


def is_commit_hash(value: str) -> bool:
    return COMMIT_HASH_PATTERN.fullmatch(value) is not None


class ReferenceClassifier:
    """Turn step invocations into skip / pinned / needs-resolution outcomes.

    Args:
        skip_patterns: Substrings; any invocation containing one is skipped.
    """

    def __init__(self, skip_patterns: Iterable[str] = ()) -> None:
        self._skip_patterns = tuple(item.strip() for item in skip_patterns if item and item.strip())

    def classify(self, uses: str) -> Classification:
        stripped = uses.strip()

        if stripped.startswith(LOCAL_PREFIXES):
            return self._outcome(uses, ClassificationKind.SKIP, reason="local action")
        if stripped.startswith(DOCKER_PREFIX):
            return self._outcome(uses, ClassificationKind.SKIP, reason="docker image")
        for pattern in self._skip_patterns:
            if pattern in stripped:
                return self._outcome(uses, ClassificationKind.SKIP, reason=f"matches exclusion '{pattern}'")

        if "@" not in stripped:
            return self._outcome(uses, ClassificationKind.MISSING_REF, reason="no tag/ref")

        try:
            identity, ref = parse_action_reference(stripped)
        except ActionReferenceParseError as error:
            return self._outcome(uses, ClassificationKind.PARSE_ERROR, reason=str(error))

        reference = ActionReference(raw=uses, identity=identity, ref=ref)
        if is_commit_hash(ref):
            return Classification(reference=reference, kind=ClassificationKind.ALREADY_PINNED)

        return Classification(
            reference=reference,
            kind=ClassificationKind.NEEDS_RESOLUTION,
            request=PinRequest(identity=identity, ref=ref),
            uses_latest=ref == LATEST_ALIAS,
        )

    def classify_document(self, document: object) -> list[Classification]:
        classifications = [self.classify(uses) for uses in iter_step_invocations(document)]
        for item in classifications:
            if item.kind is ClassificationKind.PARSE_ERROR:
                LOGGER.warning(
                    "malformed action reference",
                    extra={
                        "event": "classifier.parse_error",
                        "uses": item.reference.raw,
                        "reason": item.reason,
                    },
                )
        return classifications

    @staticmethod
    def _outcome(uses: str, kind: ClassificationKind, *, reason: str) -> Classification:
        return Classification(
            reference=ActionReference(raw=uses, identity=None, ref=None),
            kind=kind,
            reason=reason,
        )


def tally_classifications(classifications: Iterable[Classification]) -> WorkflowPinSummary:
    """Count classification outcomes; parse errors only count as found."""
    summary = WorkflowPinSummary()
    for item in classifications:
        summary.found += 1
        if item.kind is ClassificationKind.SKIP:
            summary.skipped += 1
        elif item.kind is ClassificationKind.ALREADY_PINNED:
            summary.already_pinned += 1
        elif item.kind is ClassificationKind.MISSING_REF:
            summary.without_ref += 1
        elif item.kind is ClassificationKind.NEEDS_RESOLUTION and item.uses_latest:
            summary.with_latest += 1
    return summary

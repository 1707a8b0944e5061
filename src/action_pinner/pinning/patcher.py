from __future__ import annotations
"""Rewrite `uses:` invocations in workflow text without re-serializing YAML.

Only the value spans of real step invocations are ever replaced; the rest of
the document is kept byte for byte.
"""

import logging
import re
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import date

from action_pinner.domain.entities import (
    Classification,
    ClassificationKind,
    InvocationSpan,
    ResolutionErrorKind,
    ResolutionResult,
)
from action_pinner.pinning.classifier import locate_step_invocations


LOGGER = logging.getLogger(__name__)

UNRESOLVED_MARKER = "TODO: pin to a commit hash"

_QUOTES = ("'", '"')
_LINE_TAIL = re.compile(r"[ \t]*(?:#[^\r\n]*)?\r?")


@dataclass(frozen=True, slots=True)
class PatchOperation:
    """Substitution for every span holding one exact invocation string.

    Attributes:
        invocation: Invocation string exactly as parsed from the document.
        replacement: Invocation written back in its place.
        comment: Trailing provenance comment (including `#`).
        skip_marker: Spans whose line already carries this text count as
            handled and are left alone.
    """

    invocation: str
    replacement: str
    comment: str
    skip_marker: str | None = None

    def accepts(self, source: str, line_tail: str) -> bool:
        """Whether `source` (the span as written) can take the rewrite.

        The value must be a plain or quoted scalar ending its line, so the
        appended comment cannot swallow flow-style syntax.
        """
        if _LINE_TAIL.fullmatch(line_tail) is None:
            return False
        if source[:1] in _QUOTES:
            return len(source) >= 2 and source[-1] == source[0] and source[1:-1].strip() == self.invocation
        return source.strip() == self.invocation

    def render(self, source: str) -> str:
        quote = source[0] if source[:1] in _QUOTES else ""
        return f"{quote}{self.replacement}{quote} {self.comment}"


@dataclass(slots=True)
class PatchOutcome:
    text: str
    changed: bool
    pinned: int = 0
    unresolved: int = 0
    skipped: int = 0


class PatchApplier:
    """Apply resolution results to the original document text.

    Each distinct invocation string maps to one operation; by default only its
    first step occurrence is rewritten.

    Args:
        replace_all: Rewrite every occurrence of an identical invocation.
        today: Clock used for the provenance date.
    """

    def __init__(self, *, replace_all: bool = False, today: Callable[[], date] = date.today) -> None:
        self._replace_all = replace_all
        self._today = today

    def build_operations(
        self,
        results: Mapping[str, ResolutionResult],
        classifications: Iterable[Classification],
    ) -> tuple[list[PatchOperation], int]:
        """Return patch operations plus the number of invocations left untouched."""
        stamp = self._today().isoformat()
        operations: list[PatchOperation] = []
        skipped = 0
        seen: set[str] = set()

        for item in classifications:
            if item.kind is not ClassificationKind.NEEDS_RESOLUTION or item.request is None:
                continue
            invocation = item.reference.raw.strip()
            if invocation in seen:
                continue
            seen.add(invocation)

            result = results.get(item.request.key)
            if result is None:
                skipped += 1
                continue

            if result.success:
                operations.append(
                    PatchOperation(
                        invocation=invocation,
                        replacement=f"{item.request.identity}@{result.commit_hash}",
                        comment=f"# {result.resolved_ref} on {stamp}",
                    )
                )
            elif result.error_kind is ResolutionErrorKind.UNRESOLVED:
                operations.append(
                    PatchOperation(
                        invocation=invocation,
                        replacement=invocation,
                        comment=f"# {item.request.ref} on {stamp}, {UNRESOLVED_MARKER}",
                        skip_marker=UNRESOLVED_MARKER,
                    )
                )
            else:
                skipped += 1

        return operations, skipped

    def apply(
        self,
        original_text: str,
        results: Mapping[str, ResolutionResult],
        classifications: Iterable[Classification],
    ) -> PatchOutcome:
        """Patch `original_text`.

        Raises:
            WorkflowParseError: the text is not valid YAML.
        """
        operations, skipped = self.build_operations(results, classifications)
        outcome = PatchOutcome(text=original_text, changed=False, skipped=skipped)
        if not operations:
            return outcome

        by_invocation = {operation.invocation: operation for operation in operations}
        outcome.unresolved = sum(1 for operation in operations if operation.skip_marker)
        edits: list[tuple[InvocationSpan, str]] = []
        handled: set[str] = set()

        for span in locate_step_invocations(original_text):
            operation = by_invocation.get(span.value.strip())
            if operation is None:
                continue
            if operation.invocation in handled and not self._replace_all:
                continue

            source = original_text[span.start:span.end]
            line_tail = _line_tail(original_text, span.end)
            if not operation.accepts(source, line_tail):
                LOGGER.debug(
                    "invocation span not patchable in place",
                    extra={"event": "patcher.span.rejected", "uses": operation.invocation, "offset": span.start},
                )
                continue

            handled.add(operation.invocation)
            if operation.skip_marker and operation.skip_marker in line_tail:
                continue
            edits.append((span, operation.render(source)))
            if not operation.skip_marker:
                outcome.pinned += 1

        for operation in operations:
            if operation.invocation not in handled:
                LOGGER.debug(
                    "invocation not patched",
                    extra={"event": "patcher.no_match", "uses": operation.invocation},
                )

        text = original_text
        # Back to front so earlier offsets stay valid.
        for span, replacement in reversed(edits):
            text = text[:span.start] + replacement + text[span.end:]

        outcome.text = text
        outcome.changed = text != original_text
        return outcome


def _line_tail(text: str, offset: int) -> str:
    end = text.find("\n", offset)
    return text[offset:] if end == -1 else text[offset:end]

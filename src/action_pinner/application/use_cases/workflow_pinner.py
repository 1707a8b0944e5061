from __future__ import annotations
"""Application use case: pin action references in workflow documents."""

from dataclasses import dataclass, field
import logging
from pathlib import Path

from action_pinner.domain.entities import ResolutionErrorKind, WorkflowPinSummary
from action_pinner.domain.errors import PinnerError
from action_pinner.domain.ports import FileSystemPort
from action_pinner.pinning.classifier import ReferenceClassifier, parse_workflow, tally_classifications
from action_pinner.pinning.patcher import PatchApplier
from action_pinner.pinning.scheduler import ResolutionScheduler


LOGGER = logging.getLogger(__name__)

WORKFLOWS_RELATIVE_DIR = Path(".github") / "workflows"
WORKFLOW_SUFFIXES = (".yml", ".yaml")


@dataclass(slots=True)
class DocumentExecutionSummary:
    """Outcome of processing one workflow file."""

    path: Path
    summary: WorkflowPinSummary
    written: bool
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass(slots=True)
class RepositoryExecutionSummary:
    """Aggregated outcome for every workflow file of one repository."""

    local_path: Path
    dry_run: bool
    documents: tuple[DocumentExecutionSummary, ...] = ()
    totals: WorkflowPinSummary = field(default_factory=WorkflowPinSummary)

    @property
    def failed_documents(self) -> int:
        return sum(1 for item in self.documents if not item.success)


@dataclass(slots=True)
class WorkflowPinner:
    """Core orchestration use case.

    Responsibilities:
    - parse and classify the `uses:` invocations of a document
    - resolve the invocations that need pinning through the scheduler
    - patch the original text and write it back only when it changed
    - support dry-run processing with no writes
    """

    classifier: ReferenceClassifier
    scheduler: ResolutionScheduler
    patcher: PatchApplier
    filesystem: FileSystemPort

    def pin_text(self, text: str) -> tuple[str, WorkflowPinSummary]:
        """Return the patched text and its tally.

        Raises:
            WorkflowParseError: the text is not valid YAML.
        """
        classifications = self.classifier.classify_document(parse_workflow(text))
        summary = tally_classifications(classifications)

        requests = [item.request for item in classifications if item.request is not None]
        results = self.scheduler.run(requests)
        outcome = self.patcher.apply(text, results, classifications)

        summary.pinned = outcome.pinned
        summary.unresolved = outcome.unresolved
        summary.skipped += outcome.skipped
        summary.changed = outcome.changed
        summary.errors.extend(
            f"{result.request.key}: {result.error}"
            for result in results.values()
            if result.error_kind not in (None, ResolutionErrorKind.UNRESOLVED)
        )
        return outcome.text, summary

    def pin_document(self, path: Path, *, dry_run: bool = False) -> DocumentExecutionSummary:
        """Process one workflow file.

        Raises:
            OSError: the file cannot be read or written.
            WorkflowParseError: the file is not valid YAML.
        """
        original = self.filesystem.read_text(path)
        updated, summary = self.pin_text(original)

        written = False
        if summary.changed and not dry_run:
            self.filesystem.write_text(path, updated)
            written = True

        LOGGER.info(
            "workflow document processed",
            extra={
                "event": "pinner.document.completed",
                "path": str(path),
                "found": summary.found,
                "pinned": summary.pinned,
                "already_pinned": summary.already_pinned,
                "skipped": summary.skipped,
                "unresolved": summary.unresolved,
                "changed": summary.changed,
                "written": written,
                "dry_run": dry_run,
            },
        )
        return DocumentExecutionSummary(path=path, summary=summary, written=written)

    def find_workflow_files(self, local_path: Path) -> list[Path]:
        workflows_dir = local_path / WORKFLOWS_RELATIVE_DIR
        if not self.filesystem.path_exists(workflows_dir):
            return []
        return [
            item
            for item in self.filesystem.list_directory(workflows_dir)
            if item.suffix in WORKFLOW_SUFFIXES and self.filesystem.is_file(item)
        ]

    def pin_repository(self, local_path: Path, *, dry_run: bool = False) -> RepositoryExecutionSummary:
        """Process every workflow file of a checked-out repository.

        A file that cannot be read or parsed is recorded as failed; the
        remaining files are still processed.
        """
        workflow_files = self.find_workflow_files(local_path)
        LOGGER.info(
            "workflow files discovered",
            extra={
                "event": "pinner.repository.files",
                "local_path": str(local_path),
                "count": len(workflow_files),
                "files": [item.name for item in workflow_files],
            },
        )

        documents: list[DocumentExecutionSummary] = []
        totals = WorkflowPinSummary()
        for path in workflow_files:
            try:
                document = self.pin_document(path, dry_run=dry_run)
            except (OSError, PinnerError) as error:
                LOGGER.exception(
                    "workflow document processing failed",
                    extra={"event": "pinner.document.failed", "path": str(path), "error": str(error)},
                )
                document = DocumentExecutionSummary(
                    path=path,
                    summary=WorkflowPinSummary(),
                    written=False,
                    error=str(error),
                )
            totals.merge(document.summary)
            documents.append(document)

        summary = RepositoryExecutionSummary(
            local_path=local_path,
            dry_run=dry_run,
            documents=tuple(documents),
            totals=totals,
        )
        LOGGER.info(
            "repository processing completed",
            extra={
                "event": "pinner.repository.completed",
                "local_path": str(local_path),
                "documents": len(documents),
                "failed_documents": summary.failed_documents,
                "pinned": totals.pinned,
                "changed": totals.changed,
            },
        )
        return summary

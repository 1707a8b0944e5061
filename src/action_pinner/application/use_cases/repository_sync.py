from __future__ import annotations
"""Application use case: sync remote repositories locally and pin their workflows.

Changes are left uncommitted in the local checkout for manual review.
"""

from collections.abc import Iterable
from dataclasses import dataclass
import logging
from pathlib import Path

from action_pinner.application.use_cases.workflow_pinner import RepositoryExecutionSummary, WorkflowPinner
from action_pinner.domain.errors import PinnerError
from action_pinner.domain.ports import FileSystemPort, GitClientPort


LOGGER = logging.getLogger(__name__)

_GITHUB_PREFIXES = ("https://github.com/", "http://github.com/", "git@github.com:")


def extract_repository_name(value: str) -> str:
    """Normalize a repository reference to `owner/name`.

    Accepts `owner/name`, `https://github.com/owner/name[.git]` and
    `git@github.com:owner/name.git`.

    Raises:
        ValueError: the reference has none of those shapes.
    """
    candidate = value.strip()
    if "github.com" not in candidate and candidate.count("/") == 1:
        owner, name = candidate.split("/")
        if owner and name:
            return candidate
        raise ValueError(f"Invalid GitHub repository reference: {value}")

    candidate = candidate.removesuffix(".git").rstrip("/")
    for prefix in _GITHUB_PREFIXES:
        if candidate.startswith(prefix):
            parts = candidate[len(prefix):].split("/")
            if len(parts) >= 2 and parts[0] and parts[1]:
                return f"{parts[0]}/{parts[1]}"

    raise ValueError(f"Invalid GitHub repository reference: {value}")


def read_repository_list(content: str) -> list[str]:
    """Return non-empty, non-comment lines of a repository list file."""
    entries: list[str] = []
    for line in content.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        entries.append(stripped)
    return entries


@dataclass(slots=True)
class RepositoryRunSummary:
    """Per-repository snapshot returned by `RepositorySyncPinner`."""

    repository: str
    local_path: Path | None
    sync_operation: str | None
    result: RepositoryExecutionSummary | None
    error: str | None

    @property
    def success(self) -> bool:
        return self.error is None and (self.result is None or self.result.failed_documents == 0)


@dataclass(slots=True)
class RepositorySyncPinner:
    """Clone or pull each repository under `base_dir`, then pin its workflows."""

    git_client: GitClientPort
    filesystem: FileSystemPort
    pinner: WorkflowPinner
    clone_url_template: str = "https://github.com/{repository}.git"

    def execute(
        self,
        references: Iterable[str],
        base_dir: Path,
        *,
        dry_run: bool = False,
    ) -> list[RepositoryRunSummary]:
        references = list(references)
        summaries: list[RepositoryRunSummary] = []
        self.filesystem.ensure_directory(base_dir)

        for index, reference in enumerate(references, start=1):
            try:
                repository = extract_repository_name(reference)
            except ValueError as error:
                LOGGER.error(
                    "invalid repository reference",
                    extra={"event": "sync.reference.invalid", "reference": reference, "error": str(error)},
                )
                summaries.append(
                    RepositoryRunSummary(
                        repository=reference,
                        local_path=None,
                        sync_operation=None,
                        result=None,
                        error=str(error),
                    )
                )
                continue

            local_path = base_dir / repository.replace("/", "_")
            sync_operation = "pull" if self.filesystem.path_exists(local_path) else "clone"
            LOGGER.info(
                "repository processing started",
                extra={
                    "event": "sync.repository.start",
                    "repository": repository,
                    "position": index,
                    "total": len(references),
                    "local_path": str(local_path),
                    "sync_operation": sync_operation,
                },
            )

            try:
                if sync_operation == "pull":
                    self.git_client.pull(local_path)
                else:
                    self.git_client.clone(self.clone_url_template.format(repository=repository), local_path)
                result = self.pinner.pin_repository(local_path, dry_run=dry_run)
            except (OSError, PinnerError) as error:
                LOGGER.exception(
                    "repository processing failed",
                    extra={"event": "sync.repository.failed", "repository": repository, "error": str(error)},
                )
                summaries.append(
                    RepositoryRunSummary(
                        repository=repository,
                        local_path=local_path,
                        sync_operation=sync_operation,
                        result=None,
                        error=str(error),
                    )
                )
                continue

            summaries.append(
                RepositoryRunSummary(
                    repository=repository,
                    local_path=local_path,
                    sync_operation=sync_operation,
                    result=result,
                    error=None,
                )
            )

        failed = sum(1 for item in summaries if not item.success)
        LOGGER.info(
            "repository sync completed",
            extra={
                "event": "sync.completed",
                "repositories": len(summaries),
                "successful": len(summaries) - failed,
                "failed": failed,
            },
        )
        return summaries

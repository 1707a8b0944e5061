from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Sequence

from action_pinner.adapters.filesystem.local_filesystem import LocalFileSystemAdapter
from action_pinner.adapters.git_client.shell_git_client import ShellGitClientAdapter
from action_pinner.adapters.git_providers.github_api import GitHubRefLookupAdapter, GitHubRepositoryProviderAdapter
from action_pinner.application.use_cases.repository_sync import (
    RepositoryRunSummary,
    RepositorySyncPinner,
    read_repository_list,
)
from action_pinner.application.use_cases.workflow_pinner import RepositoryExecutionSummary, WorkflowPinner
from action_pinner.cli.config import AppConfig, load_config
from action_pinner.domain.entities import ActionIdentity
from action_pinner.domain.errors import PinnerError
from action_pinner.logging_utils import configure_logging
from action_pinner.pinning import MirrorCache, PatchApplier, ReferenceClassifier, ResolutionScheduler, VersionResolver


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--debug", action="store_true", help="Enable debug logging.")
    common.add_argument("--dry-run", action="store_true", help="Resolve and report, but never write files.")
    common.add_argument(
        "--workers",
        type=int,
        required=False,
        help="Concurrent resolution workers. Falls back to PINNER_WORKERS, then host parallelism.",
    )
    common.add_argument(
        "--cache-dir",
        required=False,
        help="Directory for cached action clones. Falls back to PINNER_CACHE_DIR.",
    )
    common.add_argument(
        "--base-dir",
        required=False,
        help="Directory for cloned repositories. Falls back to PINNER_BASE_DIR.",
    )
    common.add_argument(
        "--skip-action",
        action="append",
        default=[],
        help="Skip invocations containing this substring (repeatable). Also read from PINNER_SKIP_ACTIONS.",
    )
    common.add_argument(
        "--replace-all",
        action="store_true",
        help="Rewrite every occurrence of an identical invocation, not only the first.",
    )

    parser = argparse.ArgumentParser(
        prog="gha-pinner",
        description="Pin GitHub Actions references in workflow files to immutable commit hashes.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    action = subparsers.add_parser("action", parents=[common], help="Resolve one action ref to a commit hash.")
    action.add_argument("target", help="Action identity, e.g. actions/checkout.")
    action.add_argument("version", help="Tag, branch or partial version, e.g. v4.")

    local = subparsers.add_parser(
        "local-repository", parents=[common], help="Pin workflows of a repository already on disk."
    )
    local.add_argument("target", help="Path to the repository root.")

    repository = subparsers.add_parser(
        "repository", parents=[common], help="Clone or update a repository and pin its workflows."
    )
    repository.add_argument("target", help="owner/name or a GitHub URL.")

    organization = subparsers.add_parser(
        "organization", parents=[common], help="Pin workflows of every repository of an owner."
    )
    organization.add_argument("target", help="Organization or user name.")

    repo_file = subparsers.add_parser(
        "file", parents=[common], help="Pin workflows of every repository listed in a file."
    )
    repo_file.add_argument("target", help="File with one repository reference per line.")

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        config = load_config(args=args, env=os.environ)
    except ValueError as error:
        parser.error(str(error))

    configure_logging(config.log_level, debug=config.debug)
    logger = logging.getLogger(__name__)
    logger.info(
        "cli configuration resolved",
        extra={
            "event": "cli.config.resolved",
            "command": config.command,
            "target": config.target,
            "cache_dir": str(config.cache_dir),
            "base_dir": str(config.base_dir),
            "workers": config.workers,
            "skip_actions": list(config.skip_actions),
            "replace_all": config.replace_all,
            "dry_run": config.dry_run,
            "authenticated": bool(config.github_token),
        },
    )

    try:
        return _dispatch(config)
    except (PinnerError, OSError) as error:
        logger.exception("cli execution failed", extra={"event": "cli.execution.failed"})
        print(f"Error: {error}", file=sys.stderr)
        return 1


def _dispatch(config: AppConfig) -> int:
    filesystem = LocalFileSystemAdapter()
    git_client = ShellGitClientAdapter(timeout_seconds=config.git_timeout_seconds)
    resolver = _build_resolver(config, git_client, filesystem)

    if config.command == "action":
        try:
            identity = ActionIdentity.parse(config.target)
        except ValueError as error:
            raise PinnerError(str(error)) from error
        commit_hash, resolved_ref = resolver.resolve(identity, config.version or "")
        print(f"Action: {identity}")
        print(f"Version: {resolved_ref}")
        print(f"Commit Hash: {commit_hash}")
        return 0

    pinner = WorkflowPinner(
        classifier=ReferenceClassifier(config.skip_actions),
        scheduler=ResolutionScheduler(resolver, max_workers=config.workers),
        patcher=PatchApplier(replace_all=config.replace_all),
        filesystem=filesystem,
    )

    if config.command == "local-repository":
        local_path = Path(config.target).expanduser()
        if not filesystem.path_exists(local_path):
            raise PinnerError(f"Repository path does not exist: {local_path}")
        summary = pinner.pin_repository(local_path, dry_run=config.dry_run)
        _print_repository_summary(summary)
        return 0 if summary.failed_documents == 0 else 1

    if config.command == "organization":
        provider = GitHubRepositoryProviderAdapter(
            api_base_url=config.github_api_base_url,
            token=config.github_token,
            timeout_seconds=config.github_timeout_seconds,
        )
        references = provider.list_repositories(config.target)
    elif config.command == "file":
        references = read_repository_list(filesystem.read_text(Path(config.target).expanduser()))
        if not references:
            raise PinnerError(f"No repository references found in file {config.target}")
    else:
        references = [config.target]

    sync = RepositorySyncPinner(
        git_client=git_client,
        filesystem=filesystem,
        pinner=pinner,
        clone_url_template=config.clone_url_template,
    )
    runs = sync.execute(references, config.base_dir, dry_run=config.dry_run)
    _print_run_summary(runs, dry_run=config.dry_run)
    return 0 if all(item.success for item in runs) else 1


def _build_resolver(
    config: AppConfig,
    git_client: ShellGitClientAdapter,
    filesystem: LocalFileSystemAdapter,
) -> VersionResolver:
    ref_lookup = GitHubRefLookupAdapter(
        api_base_url=config.github_api_base_url,
        token=config.github_token,
        timeout_seconds=config.github_timeout_seconds,
    )
    mirror_cache = MirrorCache(
        config.cache_dir,
        git_client,
        filesystem,
        clone_url_template=config.clone_url_template,
    )
    return VersionResolver(ref_lookup, mirror_cache, git_client)


def _print_repository_summary(summary: RepositoryExecutionSummary) -> None:
    totals = summary.totals
    mode = "DRY-RUN" if summary.dry_run else "RUN"
    print(f"[{mode}] Repository: {summary.local_path}")

    if not summary.documents:
        print("No workflow files found in .github/workflows - no GitHub Actions to pin")
        return

    print(f"Workflow files: {', '.join(item.path.name for item in summary.documents)}")
    print("Summary:")
    print(f"  Total actions found: {totals.found}")
    print(f"  Actions pinned: {totals.pinned}")
    print(f"  Actions already pinned: {totals.already_pinned}")
    print(f"  Actions with @latest: {totals.with_latest}")
    print(f"  Actions without tag/ref: {totals.without_ref}")
    print(f"  Actions flagged for manual pinning: {totals.unresolved}")
    print(f"  Actions skipped: {totals.skipped}")

    for document in summary.documents:
        if document.error:
            print(f"  failed: {document.path.name}: {document.error}")
        elif document.written:
            print(f"  updated: {document.path.name}")
        elif document.summary.changed:
            print(f"  would update: {document.path.name}")

    for error in totals.errors:
        print(f"  unresolved reference: {error}")

    if totals.pinned == 0 and totals.already_pinned > 0 and totals.unresolved == 0:
        print("All GitHub Actions are already pinned to commit hashes")
    elif totals.pinned > 0:
        print(f"Pinned {totals.pinned} GitHub Action reference(s) to commit hashes")

    if totals.with_latest:
        print(
            f"Warning: {totals.with_latest} action(s) use @latest - these should be pinned for better security"
        )
    if totals.without_ref:
        print(
            f"Security warning: {totals.without_ref} action(s) have no tag/ref and "
            "default to the mutable default branch"
        )


def _print_run_summary(runs: list[RepositoryRunSummary], *, dry_run: bool) -> None:
    for run in runs:
        print()
        if run.result is not None:
            _print_repository_summary(run.result)
        if run.error:
            print(f"- {run.repository}: failed: {run.error}")
        elif run.result is not None and run.result.totals.changed and not dry_run:
            print(f"- {run.repository}: changes ready for review in {run.local_path}")

    failed = sum(1 for run in runs if not run.success)
    print()
    print(f"Repositories processed: {len(runs)}")
    print(f"Successful repositories: {len(runs) - failed}")
    print(f"Failed repositories: {failed}")

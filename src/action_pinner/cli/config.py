from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping


SUPPORTED_COMMANDS = {"action", "local-repository", "repository", "organization", "file"}


@dataclass(slots=True)
class AppConfig:
    command: str
    target: str
    version: str | None
    cache_dir: Path
    base_dir: Path
    workers: int
    skip_actions: tuple[str, ...]
    replace_all: bool
    dry_run: bool
    debug: bool
    log_level: str
    github_token: str | None
    github_api_base_url: str
    github_timeout_seconds: float
    git_timeout_seconds: float
    clone_url_template: str


def load_config(args, env: Mapping[str, str]) -> AppConfig:
    command = _normalize_empty(args.command)
    target = _normalize_empty(args.target)
    version = _normalize_empty(getattr(args, "version", None))

    if not command:
        raise ValueError("Missing command")
    if command not in SUPPORTED_COMMANDS:
        valid = ", ".join(sorted(SUPPORTED_COMMANDS))
        raise ValueError(f"Unsupported command '{command}'. Allowed values: {valid}")
    if not target:
        raise ValueError(f"Missing target for command '{command}'")
    if command == "action" and not version:
        raise ValueError("The action command requires a version argument")

    cache_dir_raw = _normalize_empty(getattr(args, "cache_dir", None)) or _normalize_empty(env.get("PINNER_CACHE_DIR"))
    cache_dir = (
        Path(cache_dir_raw).expanduser()
        if cache_dir_raw
        else Path(tempfile.gettempdir()) / "gha-pinner-cache" / "actions"
    )

    base_dir_raw = _normalize_empty(getattr(args, "base_dir", None)) or _normalize_empty(env.get("PINNER_BASE_DIR"))
    base_dir = Path(base_dir_raw).expanduser() if base_dir_raw else Path(tempfile.gettempdir()) / "gha-pinner-repos"

    raw_workers = _normalize_empty(
        str(args.workers) if getattr(args, "workers", None) is not None else None
    ) or _normalize_empty(env.get("PINNER_WORKERS"))
    workers = os.cpu_count() or 1
    if raw_workers is not None:
        try:
            workers = int(raw_workers)
        except ValueError as error:
            raise ValueError("PINNER_WORKERS/--workers must be an integer") from error
        if workers <= 0:
            raise ValueError("PINNER_WORKERS/--workers must be greater than 0")

    skip_actions = list(getattr(args, "skip_action", None) or [])
    raw_skip_env = _normalize_empty(env.get("PINNER_SKIP_ACTIONS"))
    if raw_skip_env:
        skip_actions.extend(item.strip() for item in raw_skip_env.split(",") if item.strip())

    replace_all = bool(getattr(args, "replace_all", False)) or _parse_bool(
        env.get("PINNER_REPLACE_ALL", "false"), "PINNER_REPLACE_ALL"
    )

    github_token = _normalize_empty(env.get("GITHUB_TOKEN")) or _normalize_empty(env.get("GH_TOKEN"))
    github_api_base_url = _normalize_empty(env.get("GITHUB_API_BASE_URL")) or "https://api.github.com"
    clone_url_template = (
        _normalize_empty(env.get("GITHUB_CLONE_URL_TEMPLATE")) or "https://github.com/{repository}.git"
    )
    if "{repository}" not in clone_url_template:
        raise ValueError("GITHUB_CLONE_URL_TEMPLATE must contain the '{repository}' placeholder")

    return AppConfig(
        command=command,
        target=target,
        version=version,
        cache_dir=cache_dir,
        base_dir=base_dir,
        workers=workers,
        skip_actions=tuple(dict.fromkeys(skip_actions)),
        replace_all=replace_all,
        dry_run=bool(getattr(args, "dry_run", False)),
        debug=bool(getattr(args, "debug", False)),
        log_level=_normalize_empty(env.get("LOG_LEVEL")) or "INFO",
        github_token=github_token,
        github_api_base_url=github_api_base_url,
        github_timeout_seconds=_parse_float(env.get("GITHUB_TIMEOUT_SECONDS"), "GITHUB_TIMEOUT_SECONDS", 30.0),
        git_timeout_seconds=_parse_float(env.get("GIT_TIMEOUT_SECONDS"), "GIT_TIMEOUT_SECONDS", 300.0),
        clone_url_template=clone_url_template,
    )


def _parse_bool(value: str, name: str) -> bool:
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"", "0", "false", "no", "off"}:
        return False
    raise ValueError(f"{name} must be a boolean (true/false)")


def _parse_float(value: str | None, name: str, default: float) -> float:
    raw = _normalize_empty(value)
    if raw is None:
        return default
    try:
        parsed = float(raw)
    except ValueError as error:
        raise ValueError(f"{name} must be a number") from error
    if parsed <= 0:
        raise ValueError(f"{name} must be greater than 0")
    return parsed


def _normalize_empty(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped if stripped else None

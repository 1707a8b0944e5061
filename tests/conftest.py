from __future__ import annotations

import threading
import time
from datetime import date
from pathlib import Path

import pytest

from action_pinner.adapters.filesystem.local_filesystem import LocalFileSystemAdapter
from action_pinner.domain.entities import ActionIdentity
from action_pinner.domain.errors import InfrastructureError, RemoteLookupError
from action_pinner.domain.ports import FileSystemPort, GitClientPort, RefKind, RefLookupPort


def sha(char: str) -> str:
    return char * 40


FIXED_DAY = date(2024, 5, 17)


class FakeRefLookup(RefLookupPort):
    """In-memory forge API keyed by (repository, ref, kind)."""

    def __init__(
        self,
        refs: dict[tuple[str, str, str], str] | None = None,
        *,
        failing_kinds: tuple[str, ...] = (),
    ) -> None:
        self.refs = dict(refs or {})
        self.failing_kinds = failing_kinds
        self.calls: list[tuple[str, str, str]] = []
        self._lock = threading.Lock()

    def lookup_ref(self, identity: ActionIdentity, ref_name: str, kind: RefKind) -> str | None:
        with self._lock:
            self.calls.append((identity.repository, ref_name, kind))
        if kind in self.failing_kinds:
            raise RemoteLookupError("API unavailable")
        return self.refs.get((identity.repository, ref_name, kind))


class RemoteRepository:
    def __init__(
        self,
        tags: dict[str, str] | None = None,
        branches: dict[str, str] | None = None,
        shallow_tags: tuple[str, ...] = (),
    ) -> None:
        self.tags = dict(tags or {})
        self.branches = dict(branches or {})
        self.shallow_tags = shallow_tags


class ScriptedGitClient(GitClientPort):
    """Git client simulating remote repositories on top of real directories.

    Shallow clones only receive `shallow_tags`; full clones receive every tag.
    """

    def __init__(
        self,
        remotes: dict[str, RemoteRepository] | None = None,
        *,
        failing_depths: tuple[int | None, ...] = (),
        clone_delay: float = 0.0,
    ) -> None:
        self.remotes = dict(remotes or {})
        self.failing_depths = failing_depths
        self.clone_delay = clone_delay
        self.clone_calls: list[tuple[str, Path, int | None]] = []
        self.fetch_tags_calls: list[Path] = []
        self.pull_calls: list[Path] = []
        self.local_refs: dict[Path, dict[str, str]] = {}
        self.active: dict[Path, int] = {}
        self.max_active: dict[Path, int] = {}
        self._lock = threading.Lock()

    def _remote_for(self, path: Path) -> RemoteRepository:
        for repository, remote in self.remotes.items():
            if path.name == repository.replace("/", "_"):
                return remote
        raise InfrastructureError(f"unknown remote for {path}")

    def _enter(self, path: Path) -> None:
        with self._lock:
            self.active[path] = self.active.get(path, 0) + 1
            self.max_active[path] = max(self.max_active.get(path, 0), self.active[path])

    def _leave(self, path: Path) -> None:
        with self._lock:
            self.active[path] -= 1

    def clone(self, clone_url: str, local_path: Path, *, depth: int | None = None) -> None:
        self._enter(local_path)
        try:
            with self._lock:
                self.clone_calls.append((clone_url, local_path, depth))
            if self.clone_delay:
                time.sleep(self.clone_delay)
            if depth in self.failing_depths:
                raise InfrastructureError(f"clone failed at depth {depth}")
            remote = self._remote_for(local_path)
            local_path.mkdir(parents=True)
            tags = remote.tags if depth is None else {
                name: value for name, value in remote.tags.items() if name in remote.shallow_tags
            }
            self.local_refs[local_path] = dict(tags)
        finally:
            self._leave(local_path)

    def pull(self, local_path: Path) -> None:
        self.pull_calls.append(local_path)

    def fetch_tags(self, local_path: Path) -> None:
        self.fetch_tags_calls.append(local_path)
        self.local_refs.setdefault(local_path, {}).update(self._remote_for(local_path).tags)

    def revision_of(self, local_path: Path, ref: str) -> str | None:
        self._enter(local_path)
        try:
            refs = self.local_refs.get(local_path, {})
            if ref in refs:
                return refs[ref]
            if len(ref) == 40 and ref in refs.values():
                return ref
            return None
        finally:
            self._leave(local_path)

    def fetch_tag(self, local_path: Path, tag_name: str) -> bool:
        remote = self._remote_for(local_path)
        if tag_name not in remote.tags:
            return False
        self.local_refs.setdefault(local_path, {})[tag_name] = remote.tags[tag_name]
        return True

    def fetch_branch(self, local_path: Path, branch_name: str) -> bool:
        remote = self._remote_for(local_path)
        if branch_name not in remote.branches:
            return False
        self.local_refs.setdefault(local_path, {})[f"origin/{branch_name}"] = remote.branches[branch_name]
        return True

    def list_tags_with_prefix(self, local_path: Path, prefix: str) -> list[str]:
        refs = self.local_refs.get(local_path, {})
        return [name for name in refs if name.startswith(prefix) and not name.startswith("origin/")]


class InMemoryFileSystem(FileSystemPort):
    """Files keyed by path; directories are implied by their contents or created explicitly."""

    def __init__(self, files: dict[Path, str] | None = None) -> None:
        self.files = dict(files or {})
        self.directories: set[Path] = set()
        self.writes: list[Path] = []

    def _is_directory(self, path: Path) -> bool:
        return path in self.directories or any(path in item.parents for item in self.files)

    def ensure_directory(self, path: Path) -> None:
        self.directories.add(path)

    def path_exists(self, path: Path) -> bool:
        return path in self.files or self._is_directory(path)

    def is_file(self, path: Path) -> bool:
        return path in self.files

    def list_directory(self, path: Path) -> list[Path]:
        children = {
            path / item.relative_to(path).parts[0]
            for item in [*self.files, *self.directories]
            if path in item.parents
        }
        return sorted(children, key=lambda item: item.name)

    def read_text(self, path: Path) -> str:
        if path not in self.files:
            raise FileNotFoundError(str(path))
        return self.files[path]

    def write_text(self, path: Path, content: str) -> None:
        self.writes.append(path)
        self.files[path] = content

    def remove_tree(self, path: Path) -> None:
        self.files = {item: value for item, value in self.files.items() if item != path and path not in item.parents}
        self.directories = {item for item in self.directories if item != path and path not in item.parents}


@pytest.fixture
def filesystem() -> LocalFileSystemAdapter:
    return LocalFileSystemAdapter()


@pytest.fixture
def cache_root(tmp_path: Path) -> Path:
    return tmp_path / "cache"

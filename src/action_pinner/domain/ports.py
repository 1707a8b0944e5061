from __future__ import annotations
"""Hexagonal architecture port interfaces.

The pinning engine depends only on these abstractions. Adapters provide
concrete implementations for the hosted forge API, shell git commands and the
local filesystem.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Literal

from .entities import ActionIdentity


RefKind = Literal["tag", "branch"]


class RefLookupPort(ABC):
    """Remote ref query against the hosted code forge."""

    @abstractmethod
    def lookup_ref(self, identity: ActionIdentity, ref_name: str, kind: RefKind) -> str | None:
        """Return the commit hash `ref_name` points at, or `None` when absent.

        Raises:
            RemoteLookupError: the remote could not be queried at all.
        """
        raise NotImplementedError


class GitClientPort(ABC):
    """Local git operations: repository sync and mirror-cache queries."""

    @abstractmethod
    def clone(self, clone_url: str, local_path: Path, *, depth: int | None = None) -> None:
        """Clone remote repository into local path (shallow when `depth` is set)."""
        raise NotImplementedError

    @abstractmethod
    def pull(self, local_path: Path) -> None:
        """Update an existing local repository."""
        raise NotImplementedError

    @abstractmethod
    def fetch_tags(self, local_path: Path) -> None:
        """Refresh tag refs from origin."""
        raise NotImplementedError

    @abstractmethod
    def revision_of(self, local_path: Path, ref: str) -> str | None:
        """Return the commit hash `ref` resolves to, or `None`."""
        raise NotImplementedError

    @abstractmethod
    def fetch_tag(self, local_path: Path, tag_name: str) -> bool:
        """Fetch `tag_name` from origin into `refs/tags/<tag_name>`."""
        raise NotImplementedError

    @abstractmethod
    def fetch_branch(self, local_path: Path, branch_name: str) -> bool:
        """Fetch `branch_name` from origin into `refs/remotes/origin/<branch_name>`."""
        raise NotImplementedError

    @abstractmethod
    def list_tags_with_prefix(self, local_path: Path, prefix: str) -> list[str]:
        """List local tag names starting with `prefix`."""
        raise NotImplementedError


class FileSystemPort(ABC):
    """Filesystem operations abstracted for testability and portability."""

    @abstractmethod
    def ensure_directory(self, path: Path) -> None:
        """Ensure target directory exists (create recursively if needed)."""
        raise NotImplementedError

    @abstractmethod
    def path_exists(self, path: Path) -> bool:
        """Return whether a path exists."""
        raise NotImplementedError

    @abstractmethod
    def is_file(self, path: Path) -> bool:
        """Return whether a path exists and is a regular file."""
        raise NotImplementedError

    @abstractmethod
    def list_directory(self, path: Path) -> list[Path]:
        """Return direct children of a directory, sorted by name."""
        raise NotImplementedError

    @abstractmethod
    def read_text(self, path: Path) -> str:
        raise NotImplementedError

    @abstractmethod
    def write_text(self, path: Path, content: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def remove_tree(self, path: Path) -> None:
        """Remove a directory tree if it exists."""
        raise NotImplementedError


class RepositoryProviderPort(ABC):
    """Repository discovery on the hosted code forge."""

    @abstractmethod
    def list_repositories(self, owner: str) -> list[str]:
        """List `owner/name` slugs of every active repository of `owner`."""
        raise NotImplementedError

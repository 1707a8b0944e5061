from __future__ import annotations
"""On-disk cache of action repository clones, keyed by repository."""

import logging
import threading
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path

from action_pinner.domain.entities import ActionIdentity
from action_pinner.domain.errors import InfrastructureError, PinnerError
from action_pinner.domain.ports import FileSystemPort, GitClientPort


LOGGER = logging.getLogger(__name__)

DEFAULT_CLONE_DEPTHS: tuple[int | None, ...] = (1, 10, None)
DEFAULT_CLONE_URL_TEMPLATE = "https://github.com/{repository}.git"


class MirrorCache:
    """Lazily created local clones of action repositories.

    Entries are never deleted here. Callers must hold `lock(identity)` while
    they ensure, fetch into or query an entry; two actions living in the same
    repository share one entry and one lock.

    Args:
        root: Directory holding one sub-directory per repository.
        git_client: Port used to clone and refresh entries.
        filesystem: Port used to stat, create and clean up directories.
        clone_url_template: Format string receiving `repository` (`owner/repo`).
        clone_depths: Depth escalation for the initial clone; `None` means full.
    """

    def __init__(
        self,
        root: Path,
        git_client: GitClientPort,
        filesystem: FileSystemPort,
        *,
        clone_url_template: str = DEFAULT_CLONE_URL_TEMPLATE,
        clone_depths: Sequence[int | None] = DEFAULT_CLONE_DEPTHS,
    ) -> None:
        self._root = root
        self._git_client = git_client
        self._filesystem = filesystem
        self._clone_url_template = clone_url_template
        self._clone_depths = tuple(clone_depths) or (None,)
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    @property
    def root(self) -> Path:
        return self._root

    def path_for(self, identity: ActionIdentity) -> Path:
        return self._root / identity.repository.replace("/", "_")

    @contextmanager
    def lock(self, identity: ActionIdentity) -> Iterator[Path]:
        """Serialize access to the entry of `identity`'s repository."""
        key = identity.repository
        with self._locks_guard:
            entry_lock = self._locks.setdefault(key, threading.Lock())
        with entry_lock:
            yield self.path_for(identity)

    def ensure(self, identity: ActionIdentity) -> Path:
        """Return the entry path, cloning on a miss and refreshing tags on a hit.

        Must be called while holding `lock(identity)`.

        Raises:
            InfrastructureError: the cache root cannot be created or every
                clone depth failed.
        """
        path = self.path_for(identity)

        if self._filesystem.path_exists(path):
            LOGGER.debug(
                "mirror cache hit",
                extra={"event": "mirror.hit", "repository": identity.repository, "path": str(path)},
            )
            try:
                self._git_client.fetch_tags(path)
            except PinnerError as error:
                LOGGER.warning(
                    "unable to refresh cached mirror tags; continuing with cached refs",
                    extra={"event": "mirror.refresh.failed", "repository": identity.repository, "error": str(error)},
                )
            return path

        try:
            self._filesystem.ensure_directory(self._root)
        except OSError as error:
            raise InfrastructureError(f"Cannot create mirror cache directory {self._root}: {error}") from error

        clone_url = self._clone_url_template.format(repository=identity.repository)
        last_error: PinnerError | None = None
        for depth in self._clone_depths:
            LOGGER.info(
                "cloning action repository",
                extra={
                    "event": "mirror.clone.start",
                    "repository": identity.repository,
                    "depth": depth if depth is not None else "full",
                },
            )
            try:
                self._git_client.clone(clone_url, path, depth=depth)
            except PinnerError as error:
                last_error = error
                LOGGER.info(
                    "clone attempt failed; escalating depth",
                    extra={
                        "event": "mirror.clone.retry",
                        "repository": identity.repository,
                        "depth": depth if depth is not None else "full",
                        "error": str(error),
                    },
                )
                self._filesystem.remove_tree(path)
                continue
            return path

        raise InfrastructureError(
            f"Failed to clone action repository {identity.repository}: {last_error}"
        ) from last_error

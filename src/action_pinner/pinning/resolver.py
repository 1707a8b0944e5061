from __future__ import annotations
"""Resolve an action ref to an immutable commit hash.

Strategy, first success wins:

1. remote tag lookup, 2. remote branch lookup,
3. mirror clone: direct revision lookup, explicit tag fetch, explicit branch
   fetch, then (for non-semver refs) the lexicographically greatest local tag
   prefixed by the ref, resolved once more from the top.
"""

import logging
import re
import time

from action_pinner.domain.entities import ActionIdentity
from action_pinner.domain.errors import RemoteLookupError, UnresolvedVersionError, VersionNotFoundError
from action_pinner.domain.ports import GitClientPort, RefKind, RefLookupPort
from action_pinner.pinning.classifier import is_commit_hash
from action_pinner.pinning.mirror_cache import MirrorCache


LOGGER = logging.getLogger(__name__)

SEMVER_PATTERN = re.compile(r"v?\d+\.\d+\.\d+")


class VersionResolver:
    """Layered ref resolution backed by the forge API and a `MirrorCache`.

    Safe to call concurrently; work on the same repository is serialized by
    the cache lock.

    Args:
        ref_lookup: Remote ref query port.
        mirror_cache: Local clone cache shared by all workers.
        git_client: Port used for revision lookups and fetches inside the cache.
        max_prefix_hops: How many times a prefix-matched tag may replace the
            requested ref.
    """

    def __init__(
        self,
        ref_lookup: RefLookupPort,
        mirror_cache: MirrorCache,
        git_client: GitClientPort,
        *,
        max_prefix_hops: int = 1,
    ) -> None:
        self._ref_lookup = ref_lookup
        self._mirror_cache = mirror_cache
        self._git_client = git_client
        self._max_prefix_hops = max(0, max_prefix_hops)

    def resolve(self, identity: ActionIdentity, ref: str) -> tuple[str, str]:
        """Return `(commit_hash, resolved_ref)`.

        Raises:
            UnresolvedVersionError: semantic-version ref with no matching tag.
            VersionNotFoundError: ref exists under no strategy.
            InfrastructureError: the mirror could not be created or queried.
        """
        started = time.monotonic()
        current_ref = ref
        hops = 0

        while True:
            commit_hash = self._resolve_remote(identity, current_ref)
            if commit_hash is None:
                commit_hash, fallback_tag = self._resolve_in_mirror(identity, current_ref)
            else:
                fallback_tag = None

            if commit_hash is not None:
                LOGGER.debug(
                    "action ref resolved",
                    extra={
                        "event": "resolver.resolved",
                        "action": str(identity),
                        "ref": ref,
                        "resolved_ref": current_ref,
                        "commit_hash": commit_hash,
                        "elapsed_seconds": round(time.monotonic() - started, 3),
                    },
                )
                return commit_hash, current_ref

            if fallback_tag is None or hops >= self._max_prefix_hops:
                raise VersionNotFoundError(f"Version not found: {identity}@{ref}")

            LOGGER.info(
                "falling back to prefix-matched tag",
                extra={
                    "event": "resolver.prefix_fallback",
                    "action": str(identity),
                    "ref": current_ref,
                    "tag": fallback_tag,
                },
            )
            current_ref = fallback_tag
            hops += 1

    def _resolve_remote(self, identity: ActionIdentity, ref: str) -> str | None:
        kinds: tuple[RefKind, ...] = ("tag", "branch")
        for kind in kinds:
            try:
                commit_hash = self._ref_lookup.lookup_ref(identity, ref, kind)
            except RemoteLookupError as error:
                LOGGER.info(
                    "remote ref lookup failed; trying next tier",
                    extra={
                        "event": "resolver.remote.failed",
                        "action": str(identity),
                        "ref": ref,
                        "kind": kind,
                        "error": str(error),
                    },
                )
                continue
            if commit_hash:
                LOGGER.debug(
                    "ref resolved via remote lookup",
                    extra={"event": "resolver.remote.hit", "action": str(identity), "ref": ref, "kind": kind},
                )
                return commit_hash
        return None

    def _resolve_in_mirror(self, identity: ActionIdentity, ref: str) -> tuple[str | None, str | None]:
        """Return `(commit_hash, None)` or `(None, prefix_matched_tag | None)`."""
        with self._mirror_cache.lock(identity):
            mirror_path = self._mirror_cache.ensure(identity)

            commit_hash = self._git_client.revision_of(mirror_path, ref)
            if commit_hash:
                return commit_hash, None

            if not is_commit_hash(ref):
                if self._git_client.fetch_tag(mirror_path, ref):
                    commit_hash = self._git_client.revision_of(mirror_path, ref)
                    if commit_hash:
                        return commit_hash, None
                if self._git_client.fetch_branch(mirror_path, ref):
                    commit_hash = self._git_client.revision_of(mirror_path, f"origin/{ref}")
                    if commit_hash:
                        return commit_hash, None

            if SEMVER_PATTERN.fullmatch(ref):
                raise UnresolvedVersionError(f"Unresolved version: {identity}@{ref}")

            # Lexicographic maximum, not semantic-version maximum.
            tags = sorted(self._git_client.list_tags_with_prefix(mirror_path, ref))
            return None, tags[-1] if tags else None

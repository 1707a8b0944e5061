from __future__ import annotations
"""Bounded concurrent resolution of pin requests."""

import logging
import os
from collections.abc import Iterable
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Protocol

from action_pinner.domain.entities import ActionIdentity, PinRequest, ResolutionErrorKind, ResolutionResult
from action_pinner.domain.errors import InfrastructureError, UnresolvedVersionError, VersionNotFoundError


LOGGER = logging.getLogger(__name__)


class Resolver(Protocol):
    def resolve(self, identity: ActionIdentity, ref: str) -> tuple[str, str]:
        ...


def default_worker_count() -> int:
    return os.cpu_count() or 1


class ResolutionScheduler:
    """Fan pin requests out to a thread pool and collect one result per key.

    Duplicate requests are collapsed before dispatch. A failing request never
    aborts the batch; its failure is carried in its `ResolutionResult`.

    Args:
        resolver: Object exposing `resolve(identity, ref)`.
        max_workers: Upper bound on pool size; defaults to host parallelism.
    """

    def __init__(self, resolver: Resolver, *, max_workers: int | None = None) -> None:
        if max_workers is not None and max_workers < 1:
            raise ValueError("max_workers must be greater than 0")
        self._resolver = resolver
        self._max_workers = max_workers or default_worker_count()

    @property
    def max_workers(self) -> int:
        return self._max_workers

    def run(self, requests: Iterable[PinRequest]) -> dict[str, ResolutionResult]:
        distinct: dict[str, PinRequest] = {}
        for request in requests:
            distinct.setdefault(request.key, request)

        if not distinct:
            return {}

        worker_count = min(self._max_workers, len(distinct))
        LOGGER.info(
            "resolving pin requests",
            extra={"event": "scheduler.start", "requests": len(distinct), "workers": worker_count},
        )

        results: dict[str, ResolutionResult] = {}
        with ThreadPoolExecutor(max_workers=worker_count, thread_name_prefix="pinner") as pool:
            futures: dict[str, Future[ResolutionResult]] = {
                key: pool.submit(self._resolve_one, request) for key, request in distinct.items()
            }
            for key, future in futures.items():
                results[key] = future.result()

        failed = sum(1 for result in results.values() if not result.success)
        LOGGER.info(
            "pin requests resolved",
            extra={
                "event": "scheduler.completed",
                "requests": len(results),
                "resolved": len(results) - failed,
                "failed": failed,
            },
        )
        return results

    def _resolve_one(self, request: PinRequest) -> ResolutionResult:
        try:
            commit_hash, resolved_ref = self._resolver.resolve(request.identity, request.ref)
        except UnresolvedVersionError as error:
            return self._failure(request, ResolutionErrorKind.UNRESOLVED, error)
        except VersionNotFoundError as error:
            return self._failure(request, ResolutionErrorKind.NOT_FOUND, error)
        except InfrastructureError as error:
            return self._failure(request, ResolutionErrorKind.INFRASTRUCTURE, error)
        except Exception as error:  # noqa: BLE001
            LOGGER.exception(
                "unexpected resolution failure",
                extra={"event": "scheduler.request.crashed", "request": request.key},
            )
            return self._failure(request, ResolutionErrorKind.INFRASTRUCTURE, error)

        return ResolutionResult(request=request, commit_hash=commit_hash, resolved_ref=resolved_ref)

    @staticmethod
    def _failure(request: PinRequest, kind: ResolutionErrorKind, error: Exception) -> ResolutionResult:
        LOGGER.warning(
            "pin request failed",
            extra={
                "event": "scheduler.request.failed",
                "request": request.key,
                "error_kind": kind.value,
                "error": str(error),
            },
        )
        return ResolutionResult(
            request=request,
            commit_hash=None,
            resolved_ref=request.ref,
            error_kind=kind,
            error=str(error),
        )

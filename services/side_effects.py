"""
Best-effort side effects.

Work that must never affect the outcome of an order (customer notification,
lead bookkeeping) is submitted to a dispatcher instead of being called inline.
Each task runs inside a guard: a failure is logged and written to the
`side_effect_failures` dead-letter table for an operator to replay.

Dispatchers:
- BackgroundTaskDispatcher: runs tasks after the HTTP response is sent
  (FastAPI BackgroundTasks).
- InlineDispatcher: runs tasks immediately, still guarded (CLI, tests).
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Mapping, Optional, Protocol

from fastapi import BackgroundTasks

from domain.errors import PersistenceError
from repositories.audit_repository import record_side_effect_failure
from repositories.store import Store

logger = logging.getLogger(__name__)


class SideEffectDispatcher(Protocol):
    def submit(
        self,
        name: str,
        fn: Callable[..., Any],
        *args: Any,
        payload: Optional[Mapping[str, Any]] = None,
    ) -> None: ...


def run_best_effort(
    store: Optional[Store],
    name: str,
    fn: Callable[..., Any],
    *args: Any,
    payload: Optional[Mapping[str, Any]] = None,
) -> bool:
    """
    Run `fn(*args)`; on failure log it and record a dead letter.

    Returns True when the task completed.
    """

    try:
        fn(*args)
    except Exception as e:  # noqa: BLE001 - every failure goes to the dead-letter log
        logger.exception("Best-effort task %s failed", name)
        if store is not None:
            try:
                record_side_effect_failure(store, name, payload or {}, f"{type(e).__name__}: {e}")
            except PersistenceError:
                logger.exception("Failed to record dead letter for %s", name)
        return False
    return True


class InlineDispatcher:
    def __init__(self, store: Optional[Store] = None) -> None:
        self._store = store
        self.completed: list[str] = []
        self.failed: list[str] = []

    def submit(
        self,
        name: str,
        fn: Callable[..., Any],
        *args: Any,
        payload: Optional[Mapping[str, Any]] = None,
    ) -> None:
        if run_best_effort(self._store, name, fn, *args, payload=payload):
            self.completed.append(name)
        else:
            self.failed.append(name)


class BackgroundTaskDispatcher:
    def __init__(self, background_tasks: BackgroundTasks, store: Optional[Store] = None) -> None:
        self._background_tasks = background_tasks
        self._store = store

    def submit(
        self,
        name: str,
        fn: Callable[..., Any],
        *args: Any,
        payload: Optional[Mapping[str, Any]] = None,
    ) -> None:
        logger.debug("Queueing best-effort task %s", name)
        self._background_tasks.add_task(run_best_effort, self._store, name, fn, *args, payload=payload)


__all__ = [
    "SideEffectDispatcher",
    "run_best_effort",
    "InlineDispatcher",
    "BackgroundTaskDispatcher",
]

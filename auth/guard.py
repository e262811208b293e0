"""
auth/guard.py -- Run a destructive action at most once per process.

RunOnce holds a flag behind a threading.Lock. The lock covers only the
check-and-set of the flag; the action itself runs after the lock is released.
The flag is set BEFORE the action starts, so a concurrent second caller sees
it and returns immediately instead of running the action again.

Every caller returns normally. Only the caller that actually ran the action
gets True back, and only that caller sees an exception the action raises.
A failed action is not retried: the flag stays set.

The process-wide guard for the users-table truncate is built lazily on first
use (get_truncate_guard) under its own module lock.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from auth.store import UserStore

logger = logging.getLogger("credkeep.auth.guard")


class RunOnce:
    def __init__(self, name: str = "action") -> None:
        self.name = name
        self._lock = threading.Lock()
        self._has_run = False

    @property
    def has_run(self) -> bool:
        with self._lock:
            return self._has_run

    def run_once(self, action: Callable[[], Any]) -> bool:
        """Invoke `action` if no caller has done so yet. Returns True if this call ran it."""
        with self._lock:
            if self._has_run:
                logger.debug("%s has already run in this process, skipping", self.name)
                return False
            self._has_run = True
        logger.info("Running %s for the first time in this process", self.name)
        action()
        return True


_guard_lock = threading.Lock()
_truncate_guard: RunOnce | None = None


def get_truncate_guard() -> RunOnce:
    """Return the process-wide truncate guard, creating it on first call."""
    global _truncate_guard
    with _guard_lock:
        if _truncate_guard is None:
            _truncate_guard = RunOnce("truncate")
        return _truncate_guard


def truncate_once(store: UserStore) -> bool:
    """Delete every user record, at most once for the lifetime of the process."""
    return get_truncate_guard().run_once(store.truncate)

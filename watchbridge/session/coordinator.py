"""WatchCoordinator - track whether the watch compiler is mid-pass."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from enum import Enum

from ..diagnostics import (
    FILE_CHANGE_DETECTED,
    FOUND_ERRORS_WATCHING,
    FOUND_ONE_ERROR_WATCHING,
    STARTING_COMPILATION,
    Diagnostic,
    DiagnosticCategory,
)

logger = logging.getLogger(__name__)


class CoordinatorState(Enum):
    """Compiler activity as seen by file loads."""

    IDLE = "idle"            # Settled; artifacts may be read
    COMPILING = "compiling"  # Mid-pass; artifacts may be written


class WatchCoordinator:
    """
    Two-state machine over compiler status reports.

    Transitions:
    - IDLE -> COMPILING on a pass-start status or `mark_compiling`
    - COMPILING -> IDLE on a "watching for file changes" status, releasing
      every waiter in arrival order with the same pass generation
    - COMPILING -> IDLE when a grace period from `mark_compiling` expires
      before the compiler reports a new pass
    - `fail` raises an error in every waiter; with `settle` it also returns
      to IDLE (the compiler died mid-pass)

    Usage:
        coordinator.mark_compiling()
        generation = await coordinator.wait()
    """

    STATUS_TRANSITIONS: dict[int, CoordinatorState] = {
        STARTING_COMPILATION: CoordinatorState.COMPILING,
        FILE_CHANGE_DETECTED: CoordinatorState.COMPILING,
        FOUND_ONE_ERROR_WATCHING: CoordinatorState.IDLE,
        FOUND_ERRORS_WATCHING: CoordinatorState.IDLE,
    }

    def __init__(self):
        self._state = CoordinatorState.IDLE
        self._waiters: deque[asyncio.Future[int]] = deque()
        self._generation = 0
        self._pass_started = False
        self._grace_handle: asyncio.TimerHandle | None = None

    @property
    def state(self) -> CoordinatorState:
        return self._state

    @property
    def generation(self) -> int:
        """Number of settled passes so far."""
        return self._generation

    @property
    def pending(self) -> int:
        """Waiters suspended until the next settled pass."""
        return sum(1 for f in self._waiters if not f.done())

    def handle_status(self, status: Diagnostic) -> None:
        """Apply a compiler status report; unrecognized reports are ignored."""
        if status.category is not DiagnosticCategory.MESSAGE:
            return
        target = self.STATUS_TRANSITIONS.get(status.code)
        if target is CoordinatorState.COMPILING:
            self._pass_started = True
            self._cancel_grace()
            self._enter_compiling()
        elif target is CoordinatorState.IDLE:
            self._enter_idle()

    def mark_compiling(self, grace: float | None = None) -> None:
        """
        Enter COMPILING ahead of the compiler's own status report.

        Args:
            grace: Seconds to wait for the compiler to start a pass before
                assuming nothing changed; None waits for the next settled
                status indefinitely
        """
        if self._state is CoordinatorState.COMPILING and self._pass_started:
            return
        self._pass_started = False
        self._enter_compiling()
        self._cancel_grace()
        if grace is not None:
            loop = asyncio.get_running_loop()
            self._grace_handle = loop.call_later(grace, self._grace_expired)

    async def wait(self) -> int:
        """
        Suspend until the compiler is IDLE.

        Returns:
            Generation of the pass whose artifacts the caller may read
        """
        while self._state is CoordinatorState.COMPILING:
            future: asyncio.Future[int] = asyncio.get_running_loop().create_future()
            self._waiters.append(future)
            await future
        return self._generation

    def fail(self, error: BaseException, settle: bool = False) -> int:
        """
        Release every pending waiter with `error` instead of a generation.

        Args:
            error: Exception raised from each suspended `wait()`
            settle: Also return to IDLE without counting a pass; used when
                the compiler is gone and no settled status will follow

        Returns:
            Number of waiters that received the error
        """
        released = 0
        while self._waiters:
            future = self._waiters.popleft()
            if not future.done():
                future.set_exception(error)
                released += 1
        if settle:
            self._cancel_grace()
            self._state = CoordinatorState.IDLE
            self._pass_started = False
        logger.debug("Failed %d waiters: %s", released, error)
        return released

    def _enter_compiling(self) -> None:
        if self._state is not CoordinatorState.COMPILING:
            logger.debug("Compiler pass %d started", self._generation + 1)
        self._state = CoordinatorState.COMPILING

    def _enter_idle(self) -> None:
        self._cancel_grace()
        if self._state is CoordinatorState.IDLE:
            return
        self._state = CoordinatorState.IDLE
        self._pass_started = False
        self._generation += 1
        logger.debug("Compiler pass %d settled, releasing %d waiters", self._generation, self.pending)
        while self._waiters:
            future = self._waiters.popleft()
            if not future.done():
                future.set_result(self._generation)

    def _grace_expired(self) -> None:
        self._grace_handle = None
        if self._state is CoordinatorState.COMPILING and not self._pass_started:
            logger.debug("No compiler pass started after wake")
            self._enter_idle()

    def _cancel_grace(self) -> None:
        if self._grace_handle is not None:
            self._grace_handle.cancel()
            self._grace_handle = None


__all__ = ["CoordinatorState", "WatchCoordinator"]

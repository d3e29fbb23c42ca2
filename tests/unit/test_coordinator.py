"""Tests for WatchCoordinator - compiler activity state machine."""

import asyncio

import pytest

from watchbridge.diagnostics import (
    FILE_CHANGE_DETECTED,
    FOUND_ERRORS_WATCHING,
    FOUND_ONE_ERROR_WATCHING,
    STARTING_COMPILATION,
    Diagnostic,
    DiagnosticCategory,
)
from watchbridge.session.coordinator import CoordinatorState, WatchCoordinator


def status(code: int, category: DiagnosticCategory = DiagnosticCategory.MESSAGE) -> Diagnostic:
    return Diagnostic(code=code, category=category, text=f"status {code}")


def test_starts_idle():
    """A new coordinator is idle at generation 0."""
    coordinator = WatchCoordinator()
    assert coordinator.state is CoordinatorState.IDLE
    assert coordinator.generation == 0


@pytest.mark.parametrize("code", [STARTING_COMPILATION, FILE_CHANGE_DETECTED])
def test_pass_start_statuses_enter_compiling(code):
    coordinator = WatchCoordinator()
    coordinator.handle_status(status(code))
    assert coordinator.state is CoordinatorState.COMPILING


@pytest.mark.parametrize("code", [FOUND_ONE_ERROR_WATCHING, FOUND_ERRORS_WATCHING])
def test_settled_statuses_enter_idle(code):
    coordinator = WatchCoordinator()
    coordinator.handle_status(status(FILE_CHANGE_DETECTED))
    coordinator.handle_status(status(code))
    assert coordinator.state is CoordinatorState.IDLE
    assert coordinator.generation == 1


def test_unrecognized_status_is_ignored():
    """Unknown codes cause no transition."""
    coordinator = WatchCoordinator()
    coordinator.handle_status(status(FILE_CHANGE_DETECTED))
    coordinator.handle_status(status(6900))
    assert coordinator.state is CoordinatorState.COMPILING


def test_non_message_category_is_ignored():
    """Only MESSAGE-category reports are watch statuses."""
    coordinator = WatchCoordinator()
    coordinator.handle_status(status(FILE_CHANGE_DETECTED, DiagnosticCategory.ERROR))
    assert coordinator.state is CoordinatorState.IDLE


def test_repeated_settled_status_does_not_bump_generation():
    coordinator = WatchCoordinator()
    coordinator.handle_status(status(FILE_CHANGE_DETECTED))
    coordinator.handle_status(status(FOUND_ERRORS_WATCHING))
    coordinator.handle_status(status(FOUND_ERRORS_WATCHING))
    assert coordinator.generation == 1


@pytest.mark.asyncio
async def test_wait_returns_immediately_when_idle():
    coordinator = WatchCoordinator()
    assert await asyncio.wait_for(coordinator.wait(), timeout=1) == 0


@pytest.mark.asyncio
async def test_wait_blocks_until_idle():
    """Waiters stay suspended for the whole pass."""
    coordinator = WatchCoordinator()
    coordinator.handle_status(status(STARTING_COMPILATION))

    waiter = asyncio.create_task(coordinator.wait())
    await asyncio.sleep(0)
    assert not waiter.done()
    assert coordinator.pending == 1

    coordinator.handle_status(status(FOUND_ERRORS_WATCHING))
    assert await asyncio.wait_for(waiter, timeout=1) == 1
    assert coordinator.pending == 0


@pytest.mark.asyncio
async def test_waiters_released_in_arrival_order_with_same_generation():
    """All waiters of one pass resume in FIFO order and see one generation."""
    coordinator = WatchCoordinator()
    coordinator.handle_status(status(FILE_CHANGE_DETECTED))
    resumed: list[tuple[str, int]] = []

    async def load(name: str):
        generation = await coordinator.wait()
        resumed.append((name, generation))

    tasks = [asyncio.create_task(load(name)) for name in ("a", "b", "c")]
    await asyncio.sleep(0)
    coordinator.handle_status(status(FOUND_ONE_ERROR_WATCHING))
    await asyncio.gather(*tasks)

    assert resumed == [("a", 1), ("b", 1), ("c", 1)]


@pytest.mark.asyncio
async def test_mark_compiling_blocks_before_first_status():
    """Loads right after a wake block even before the compiler reports."""
    coordinator = WatchCoordinator()
    coordinator.mark_compiling()

    waiter = asyncio.create_task(coordinator.wait())
    await asyncio.sleep(0.01)
    assert not waiter.done()

    coordinator.handle_status(status(FILE_CHANGE_DETECTED))
    coordinator.handle_status(status(FOUND_ERRORS_WATCHING))
    assert await asyncio.wait_for(waiter, timeout=1) == 1


@pytest.mark.asyncio
async def test_grace_expires_when_no_pass_starts():
    """A wake with nothing to recompile settles after the grace period."""
    coordinator = WatchCoordinator()
    coordinator.mark_compiling(grace=0.01)
    assert coordinator.state is CoordinatorState.COMPILING

    generation = await asyncio.wait_for(coordinator.wait(), timeout=1)
    assert generation == 1
    assert coordinator.state is CoordinatorState.IDLE


@pytest.mark.asyncio
async def test_grace_cancelled_once_pass_starts():
    """After the compiler reports a pass start, only its settled status ends it."""
    coordinator = WatchCoordinator()
    coordinator.mark_compiling(grace=0.01)
    coordinator.handle_status(status(FILE_CHANGE_DETECTED))

    await asyncio.sleep(0.05)
    assert coordinator.state is CoordinatorState.COMPILING

    coordinator.handle_status(status(FOUND_ERRORS_WATCHING))
    assert coordinator.state is CoordinatorState.IDLE


@pytest.mark.asyncio
async def test_mark_compiling_during_started_pass_keeps_pass():
    """Waking mid-pass does not add a grace timeout to the running pass."""
    coordinator = WatchCoordinator()
    coordinator.handle_status(status(FILE_CHANGE_DETECTED))
    coordinator.mark_compiling(grace=0.01)

    await asyncio.sleep(0.05)
    assert coordinator.state is CoordinatorState.COMPILING


@pytest.mark.asyncio
async def test_cancelled_waiter_does_not_block_others():
    coordinator = WatchCoordinator()
    coordinator.handle_status(status(FILE_CHANGE_DETECTED))

    cancelled = asyncio.create_task(coordinator.wait())
    kept = asyncio.create_task(coordinator.wait())
    await asyncio.sleep(0)
    cancelled.cancel()
    await asyncio.sleep(0)

    coordinator.handle_status(status(FOUND_ERRORS_WATCHING))
    assert await asyncio.wait_for(kept, timeout=1) == 1
    assert cancelled.cancelled()


@pytest.mark.asyncio
async def test_fail_raises_in_every_waiter():
    """A failure mid-pass reaches suspended loads; the pass itself goes on."""
    coordinator = WatchCoordinator()
    coordinator.handle_status(status(FILE_CHANGE_DETECTED))
    waiters = [asyncio.create_task(coordinator.wait()) for _ in range(2)]
    await asyncio.sleep(0)

    error = RuntimeError("disk full")
    assert coordinator.fail(error) == 2
    for waiter in waiters:
        with pytest.raises(RuntimeError):
            await asyncio.wait_for(waiter, timeout=1)
    assert coordinator.state is CoordinatorState.COMPILING
    assert coordinator.pending == 0


@pytest.mark.asyncio
async def test_fail_with_settle_returns_to_idle():
    """A compiler that died leaves no pass behind to wait for."""
    coordinator = WatchCoordinator()
    coordinator.mark_compiling(grace=0.01)
    waiter = asyncio.create_task(coordinator.wait())
    await asyncio.sleep(0)

    coordinator.fail(RuntimeError("exited"), settle=True)
    with pytest.raises(RuntimeError):
        await asyncio.wait_for(waiter, timeout=1)
    assert coordinator.state is CoordinatorState.IDLE
    assert coordinator.generation == 0

    await asyncio.sleep(0.05)
    assert coordinator.generation == 0
    assert await coordinator.wait() == 0


def test_fail_without_waiters():
    coordinator = WatchCoordinator()
    assert coordinator.fail(RuntimeError("unused")) == 0

"""Tests for CompilationSession - compiler lifetime and write hook wiring."""

import asyncio
import logging

import pytest

from watchbridge.artifacts.output_resolver import OutputResolver
from watchbridge.artifacts.persistent_cache import PersistentArtifactCache
from watchbridge.artifacts.store import ArtifactStore
from watchbridge.compiler.module_resolution import ModuleResolutionAdapter
from watchbridge.config import CompilerOptions, ParsedConfig
from watchbridge.errors import CompilerExitError, FatalIOError, WatchBridgeError
from watchbridge.session.compilation_session import CompilationSession
from watchbridge.session.coordinator import CoordinatorState


@pytest.fixture
def sources(tmp_path):
    src = tmp_path / "src"
    src.mkdir()
    (src / "a.ts").write_text("export const a = 1;\n")
    return tmp_path


def make_session(backend, root, incremental=False, with_cache=True, wake_grace=0.01):
    config = ParsedConfig(
        file_names=[(root / "src" / "a.ts").as_posix()],
        options=CompilerOptions(
            out_dir=(root / "dist").as_posix(),
            root_dir=(root / "src").as_posix(),
            incremental=incremental or None,
        ),
        config_path=(root / "tsconfig.json").as_posix(),
        base_dir=root.as_posix(),
    )
    store = ArtifactStore()
    cache = PersistentArtifactCache(root / "cache") if with_cache else None
    outputs = OutputResolver(config, store, cache, ignore_case=False)
    return CompilationSession(
        backend,
        config,
        ModuleResolutionAdapter(lambda path: True),
        store,
        outputs,
        persistent_cache=cache,
        wake_grace=wake_grace,
    )


class TestLifecycle:
    """Test suite for CompilationSession start/dispose."""

    @pytest.mark.asyncio
    async def test_compiler_created_once(self, fake_backend, sources):
        session = make_session(fake_backend, sources)
        assert not session.started

        await session.start()
        await session.start()
        await session.start()

        assert len(fake_backend.programs) == 1
        assert session.program is fake_backend.program
        assert fake_backend.program.wakes == 2

    @pytest.mark.asyncio
    async def test_first_start_blocks_loads_until_first_pass(self, fake_backend, sources):
        session = make_session(fake_backend, sources)
        await session.start()
        assert session.coordinator.state is CoordinatorState.COMPILING

        waiter = asyncio.create_task(session.wait_until_idle())
        await asyncio.sleep(0.05)
        assert not waiter.done()

        fake_backend.program.begin_pass(initial=True)
        fake_backend.program.finish_pass()
        assert await asyncio.wait_for(waiter, timeout=1) == 1

    @pytest.mark.asyncio
    async def test_wake_without_changes_settles_after_grace(self, fake_backend, sources):
        session = make_session(fake_backend, sources)
        await session.start()
        fake_backend.program.begin_pass(initial=True)
        fake_backend.program.finish_pass()

        await session.start()
        assert await asyncio.wait_for(session.wait_until_idle(), timeout=1) == 2

    @pytest.mark.asyncio
    async def test_restarting_wake_waits_for_the_pass(self, fake_backend, sources):
        """A restarted compiler may take longer than the grace period to report."""
        session = make_session(fake_backend, sources, wake_grace=0.01)
        await session.start()
        program = fake_backend.program
        program.begin_pass(initial=True)
        program.finish_pass()

        program.restart_on_wake = True
        await session.start()
        waiter = asyncio.create_task(session.wait_until_idle())
        await asyncio.sleep(0.05)
        assert not waiter.done()

        program.begin_pass(initial=True)
        program.finish_pass()
        assert await asyncio.wait_for(waiter, timeout=1) == 2

    @pytest.mark.asyncio
    async def test_dispose_closes_compiler(self, fake_backend, sources):
        session = make_session(fake_backend, sources)
        await session.start()
        await session.dispose()
        assert fake_backend.program.closed
        assert session.program is None

        with pytest.raises(WatchBridgeError):
            await session.start()

    @pytest.mark.asyncio
    async def test_dispose_before_start(self, fake_backend, sources):
        session = make_session(fake_backend, sources)
        await session.dispose()
        assert fake_backend.programs == []

    @pytest.mark.asyncio
    async def test_dispose_logs_undelivered_diagnostics(self, fake_backend, sources, caplog):
        session = make_session(fake_backend, sources)
        await session.start()
        fake_backend.program.diagnose("Type 'string' is not assignable to type 'number'.")

        with caplog.at_level(logging.WARNING, logger="watchbridge.session.compilation_session"):
            await session.dispose()
        assert "TS2322" in caplog.text
        assert len(session.diagnostics) == 0


class TestWriteHook:
    """Emitted files flow into the artifact caches."""

    @pytest.mark.asyncio
    async def test_emit_goes_to_store(self, fake_backend, sources):
        session = make_session(fake_backend, sources)
        await session.start()
        output = (sources / "dist" / "a.js").as_posix()
        fake_backend.program.emit(output, "code")
        assert session.artifacts.get(output) == "code"

    @pytest.mark.asyncio
    async def test_not_persisted_without_incremental(self, fake_backend, sources):
        session = make_session(fake_backend, sources)
        await session.start()
        fake_backend.program.emit((sources / "dist" / "a.js").as_posix(), "code")
        assert session.persistent_cache.entries() == []

    @pytest.mark.asyncio
    async def test_persisted_when_incremental(self, fake_backend, sources):
        session = make_session(fake_backend, sources, incremental=True)
        await session.start()
        output = (sources / "dist" / "a.js").as_posix()
        fake_backend.program.emit(output, "code")

        cache = session.persistent_cache
        fingerprint = cache.fingerprint_file((sources / "src" / "a.ts").as_posix())
        assert cache.lookup(output, fingerprint) == "code"

    @pytest.mark.asyncio
    async def test_explicit_source_file_used(self, fake_backend, sources):
        session = make_session(fake_backend, sources, incremental=True)
        await session.start()
        source = (sources / "src" / "a.ts").as_posix()
        output = (sources / "elsewhere" / "bundle.js").as_posix()
        fake_backend.program.emit(output, "code", source_file=source)

        cache = session.persistent_cache
        assert cache.lookup(output, cache.fingerprint_file(source)) == "code"

    @pytest.mark.asyncio
    async def test_output_without_source_not_persisted(self, fake_backend, sources):
        session = make_session(fake_backend, sources, incremental=True)
        await session.start()
        fake_backend.program.emit((sources / "tsconfig.tsbuildinfo").as_posix(), "{}")
        assert session.artifacts.get((sources / "tsconfig.tsbuildinfo").as_posix()) == "{}"
        assert session.persistent_cache.entries() == []

    @pytest.mark.asyncio
    async def test_compiler_diagnostics_queued_as_warnings(self, fake_backend, sources):
        session = make_session(fake_backend, sources)
        await session.start()
        fake_backend.program.diagnose("';' expected.", code=1005)

        errors, warnings = session.diagnostics.drain()
        assert errors == []
        assert [w.text for w in warnings] == ["watchbridge TS1005: ';' expected."]

    @pytest.mark.asyncio
    async def test_fingerprint_taken_from_compiled_text(self, fake_backend, sources):
        """The cached entry matches the source the compiler read, not a later edit."""
        session = make_session(fake_backend, sources, incremental=True)
        await session.start()
        source = sources / "src" / "a.ts"
        output = (sources / "dist" / "a.js").as_posix()
        compiled_text = source.read_text()
        source.write_text("export const a = 2;\n")

        fake_backend.program.emit(output, "compiled v1", source.as_posix(), compiled_text)

        cache = session.persistent_cache
        assert cache.lookup(output, cache.fingerprint_file(source.as_posix())) is None
        source.write_text(compiled_text)
        assert cache.lookup(output, cache.fingerprint_file(source.as_posix())) == "compiled v1"


class TestFailures:
    """Compiler-side failures are raised to the next load."""

    @pytest.mark.asyncio
    async def test_write_failure_raised_to_waiting_load(self, fake_backend, sources):
        (sources / "blocker").write_text("")
        session = make_session(fake_backend, sources, incremental=True)
        session.persistent_cache.root = sources / "blocker" / "cache"
        await session.start()
        waiter = asyncio.create_task(session.wait_until_idle())
        await asyncio.sleep(0)

        program = fake_backend.program
        program.begin_pass(initial=True)
        program.emit((sources / "dist" / "a.js").as_posix(), "code")

        with pytest.raises(FatalIOError):
            await asyncio.wait_for(waiter, timeout=1)
        assert session.failure is None
        assert session.artifacts.get((sources / "dist" / "a.js").as_posix()) == "code"

        # The pass itself completes normally
        program.finish_pass()
        assert await asyncio.wait_for(session.wait_until_idle(), timeout=1) == 1

    @pytest.mark.asyncio
    async def test_write_failure_raised_once_to_next_load(self, fake_backend, sources):
        (sources / "blocker").write_text("")
        session = make_session(fake_backend, sources, incremental=True)
        session.persistent_cache.root = sources / "blocker" / "cache"
        await session.start()
        program = fake_backend.program
        program.begin_pass(initial=True)
        program.emit((sources / "dist" / "a.js").as_posix(), "code")
        program.finish_pass()

        with pytest.raises(FatalIOError):
            await session.wait_until_idle()
        assert await asyncio.wait_for(session.wait_until_idle(), timeout=1) == 1

    @pytest.mark.asyncio
    async def test_compiler_exit_releases_waiters(self, fake_backend, sources):
        session = make_session(fake_backend, sources)
        await session.start()
        waiter = asyncio.create_task(session.wait_until_idle())
        await asyncio.sleep(0)

        program = fake_backend.program
        program.begin_pass(initial=True)
        program.diagnose("Option 'rootDirs' can only be specified in 'tsconfig.json' file.", code=6064)
        program.exit(1, ["fatal"])

        with pytest.raises(CompilerExitError) as exc_info:
            await asyncio.wait_for(waiter, timeout=1)
        assert exc_info.value.returncode == 1
        assert "TS6064" in str(exc_info.value)
        assert "fatal" in str(exc_info.value)
        assert len(session.diagnostics) == 0

    @pytest.mark.asyncio
    async def test_compiler_exit_is_sticky_until_restart(self, fake_backend, sources):
        session = make_session(fake_backend, sources)
        await session.start()
        fake_backend.programs[0].exit(1)

        for _ in range(2):
            with pytest.raises(CompilerExitError):
                await asyncio.wait_for(session.wait_until_idle(), timeout=1)

        await session.start()
        assert len(fake_backend.programs) == 2
        assert fake_backend.programs[0].closed
        assert session.failure is None

        waiter = asyncio.create_task(session.wait_until_idle())
        fake_backend.programs[1].begin_pass(initial=True)
        fake_backend.programs[1].finish_pass()
        assert await asyncio.wait_for(waiter, timeout=1) == 1

    @pytest.mark.asyncio
    async def test_backend_start_failure_does_not_block_loads(self, sources):
        class Broken:
            async def create_watch_program(self, config, hooks):
                raise WatchBridgeError("cannot start")

        session = make_session(Broken(), sources)
        with pytest.raises(WatchBridgeError):
            await session.start()
        assert session.coordinator.state is CoordinatorState.IDLE
        assert not session.started

    @pytest.mark.asyncio
    async def test_dispose_releases_waiters(self, fake_backend, sources):
        session = make_session(fake_backend, sources)
        await session.start()
        waiter = asyncio.create_task(session.wait_until_idle())
        await asyncio.sleep(0)

        await session.dispose()
        with pytest.raises(WatchBridgeError):
            await asyncio.wait_for(waiter, timeout=1)

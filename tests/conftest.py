"""
Shared test fixtures.

FakeBackend stands in for the watch compiler: tests drive compile passes
by hand through the hooks the session hands it.
"""

from __future__ import annotations

import json
import pytest

from watchbridge.diagnostics import (
    FILE_CHANGE_DETECTED,
    FOUND_ERRORS_WATCHING,
    FOUND_ONE_ERROR_WATCHING,
    STARTING_COMPILATION,
    Diagnostic,
    DiagnosticCategory,
)
from watchbridge.errors import CompilerExitError


class FakeWatchProgram:
    """A watch compiler whose passes are scripted by the test."""

    def __init__(self, config, hooks):
        self.config = config
        self.hooks = hooks
        self.wakes = 0
        self.closed = False
        # What the next wake reports: True when it restarts the compiler
        self.restart_on_wake = False

    async def wake(self):
        self.wakes += 1
        return self.restart_on_wake

    async def close(self):
        self.closed = True

    def begin_pass(self, initial: bool = False):
        code = STARTING_COMPILATION if initial else FILE_CHANGE_DETECTED
        self.hooks.report_status(
            Diagnostic(code=code, category=DiagnosticCategory.MESSAGE, text="Starting compilation")
        )

    def emit(self, file_name: str, data: str, source_file: str | None = None, source_text: str | None = None):
        """Report an emitted file; a raising write hook is reported as a failure."""
        try:
            self.hooks.write_file(file_name, data, source_file, source_text)
        except Exception as e:
            self.hooks.report_failure(e, False)

    def resolve(self, specifier: str, containing_file: str, compiler_result=None):
        return self.hooks.resolve_module(specifier, containing_file, compiler_result)

    def exit(self, returncode: int = 1, output: list[str] | None = None):
        self.hooks.report_failure(CompilerExitError(returncode, output), True)

    def diagnose(self, text: str, code: int = 2322, file: str | None = None, line: int | None = None):
        self.hooks.report_diagnostic(
            Diagnostic(code=code, category=DiagnosticCategory.ERROR, text=text, file=file, line=line, column=1)
        )

    def finish_pass(self, errors: int = 0):
        code = FOUND_ONE_ERROR_WATCHING if errors == 1 else FOUND_ERRORS_WATCHING
        self.hooks.report_status(
            Diagnostic(
                code=code,
                category=DiagnosticCategory.MESSAGE,
                text=f"Found {errors} errors. Watching for file changes.",
            )
        )


class FakeBackend:
    """Records every watch program it creates."""

    def __init__(self):
        self.programs: list[FakeWatchProgram] = []

    async def create_watch_program(self, config, hooks):
        program = FakeWatchProgram(config, hooks)
        self.programs.append(program)
        return program

    @property
    def program(self) -> FakeWatchProgram:
        assert len(self.programs) == 1, f"expected one program, got {len(self.programs)}"
        return self.programs[0]


@pytest.fixture
def fake_backend():
    """Fresh fake compiler backend."""
    return FakeBackend()


@pytest.fixture
def project(tmp_path):
    """
    A small TypeScript project on disk.

    src/index.ts imports src/util.ts; tsconfig emits to dist/.
    """
    root = tmp_path / "project"
    (root / "src").mkdir(parents=True)
    (root / "src" / "index.ts").write_text("import { add } from './util';\nexport const x: number = add(1, 2);\n")
    (root / "src" / "util.ts").write_text("export function add(a: number, b: number) { return a + b; }\n")
    (root / "tsconfig.json").write_text(json.dumps({
        "compilerOptions": {"outDir": "dist", "rootDir": "src", "target": "es2020"},
        "include": ["src"],
    }))
    return root

"""External compiler invocation.

Runs the PHPX compiler in place over a workspace's ``src/`` tree and reports a
structured result. The invoker never cleans up after a failure; that is the
pipeline's job.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from wasmpack.errors import CompilationFailed
from wasmpack.utils import CommandRunner, console, run_tool

logger = logging.getLogger(__name__)

SIDE_FILE_SUFFIX = ".ai.map"


@dataclass(frozen=True)
class CompileOptions:
    emit_debug_metadata: bool = False
    emit_browser_source_maps: bool = False

    def describe(self) -> str:
        modes = []
        if self.emit_debug_metadata:
            modes.append("AI source maps")
        if self.emit_browser_source_maps:
            modes.append("HTML source maps")
        if not modes:
            return "Compiling PHPX files"
        return f"Compiling PHPX files (generating {' and '.join(modes)})"


@dataclass
class CompileResult:
    """Structured result from one compiler run."""

    exit_code: int
    output_lines: list[str] = field(default_factory=list)
    duration_seconds: float = 0.0
    side_files: list[Path] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.exit_code == 0


def find_side_files(root: Path, suffix: str = SIDE_FILE_SUFFIX) -> list[Path]:
    """Every regular file below *root* whose name ends with *suffix*, sorted."""
    return sorted(p for p in Path(root).rglob(f"*{suffix}") if p.is_file())


class CompilerInvoker:
    """Runs ``<compiler> --compile-php-files [flags] <src> <src>``.

    Input and output directories are the same path, so sources are
    transformed in place inside the workspace.
    """

    def __init__(
        self,
        command: list[str],
        base_args: list[str] | None = None,
        cwd: Path | None = None,
        runner: CommandRunner = run_tool,
    ):
        self.command = list(command)
        self.base_args = list(base_args if base_args is not None else ["--compile-php-files"])
        self.cwd = cwd
        self.runner = runner

    def build_command(self, source_subtree: Path, options: CompileOptions) -> list[str]:
        cmd = [*self.command, *self.base_args]
        if options.emit_debug_metadata:
            cmd.append("--ai-source-maps")
        if options.emit_browser_source_maps:
            cmd.append("--create-html-maps")
        cmd.extend([str(source_subtree), str(source_subtree)])
        return cmd

    async def compile(self, source_subtree: Path, options: CompileOptions) -> CompileResult:
        """Compile *source_subtree* in place.

        Raises:
            CompilationFailed: If the compiler exits non-zero. The exception
                carries the ``CompileResult`` with the captured output.
        """
        console.print(f"{options.describe()}...")
        tool = await self.runner(self.build_command(source_subtree, options), cwd=self.cwd)

        result = CompileResult(
            exit_code=tool.exit_code,
            output_lines=tool.output_lines,
            duration_seconds=tool.duration_seconds,
        )
        if not result.success:
            raise CompilationFailed(
                f"Compilation failed with return code: {result.exit_code}",
                result=result,
            )

        if options.emit_debug_metadata:
            result.side_files = find_side_files(source_subtree)
            logger.debug("Compiler emitted %d side-file(s)", len(result.side_files))
        return result

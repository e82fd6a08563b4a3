"""Shared utility functions for wasmpack.

Provides async external-tool execution, file-system helpers and Rich-based
console reporting used by the pipeline, the watcher and the CLI.
"""

from __future__ import annotations

import asyncio
import os
import shutil
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.rule import Rule
from rich.table import Table

console = Console()

# ---------------------------------------------------------------------------
# External tool execution
# ---------------------------------------------------------------------------


@dataclass
class ToolResult:
    """Structured result of one external process invocation."""

    command: list[str]
    exit_code: int
    output_lines: list[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return self.exit_code == 0


CommandRunner = Callable[..., Awaitable[ToolResult]]


async def run_tool(
    cmd: Sequence[str],
    cwd: str | Path | None = None,
    env: dict[str, str] | None = None,
    timeout: float | None = None,
) -> ToolResult:
    """Run an external tool and capture its combined stdout/stderr.

    Stderr is merged into stdout (the ``2>&1`` of a shell pipeline) so that the
    captured lines keep the order in which the tool wrote them.

    Args:
        cmd: Executable followed by its arguments.
        cwd: Working directory for the child process.
        env: Extra environment variables merged on top of ``os.environ``.
        timeout: Optional wall-clock limit in seconds. ``None`` waits forever.

    Returns:
        A ``ToolResult``. A missing executable is reported as exit code 127
        with the OS error as the only output line, the way a shell would.
    """
    command = [str(part) for part in cmd]
    merged_env: dict[str, str] | None = None
    if env:
        merged_env = {**os.environ, **env}

    start = time.monotonic()
    try:
        process = await asyncio.create_subprocess_exec(
            *command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            cwd=str(cwd) if cwd else None,
            env=merged_env,
        )
    except (FileNotFoundError, PermissionError) as exc:
        return ToolResult(
            command=command,
            exit_code=127,
            output_lines=[f"{command[0]}: {exc.strerror or exc}"],
            duration_seconds=time.monotonic() - start,
        )

    try:
        stdout_bytes, _ = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        return ToolResult(
            command=command,
            exit_code=-1,
            output_lines=[f"Command timed out after {timeout}s: {' '.join(command)}"],
            duration_seconds=time.monotonic() - start,
        )

    text = (stdout_bytes or b"").decode("utf-8", errors="replace")
    return ToolResult(
        command=command,
        exit_code=process.returncode if process.returncode is not None else -1,
        output_lines=text.splitlines(),
        duration_seconds=time.monotonic() - start,
    )


# ---------------------------------------------------------------------------
# File-system helpers
# ---------------------------------------------------------------------------


def ensure_dir(path: str | Path) -> Path:
    """Create a directory (and parents) if it does not exist."""
    dir_path = Path(path)
    dir_path.mkdir(parents=True, exist_ok=True)
    return dir_path


def _ignore_missing(func: Callable[..., Any], path: str, exc: BaseException) -> None:
    if isinstance(exc, FileNotFoundError):
        return
    raise exc


def remove_tree(path: str | Path) -> None:
    """Recursively delete *path*.

    A no-op when the path is already gone, and tolerant of entries vanishing
    mid-walk (a concurrent or interrupted earlier delete). Other errors
    propagate as ``OSError``.
    """
    target = Path(path)
    if target.is_symlink() or target.is_file():
        target.unlink(missing_ok=True)
        return
    if not target.exists():
        return
    shutil.rmtree(target, onexc=_ignore_missing)


def directory_size(path: str | Path) -> int:
    """Total size in bytes of every regular file below *path*."""
    total = 0
    for root, _dirs, files in os.walk(path):
        for name in files:
            try:
                total += os.lstat(os.path.join(root, name)).st_size
            except FileNotFoundError:
                continue
    return total


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------


def format_duration(seconds: float) -> str:
    """Format a duration in seconds to a human-readable string.

    Examples::

        format_duration(3.7)    -> "3.7s"
        format_duration(65.2)   -> "1m 5s"
        format_duration(3661.0) -> "1h 1m 1s"
    """
    if seconds < 0:
        return "0.0s"

    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = seconds % 60

    parts: list[str] = []
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")

    if hours > 0 or minutes > 0:
        parts.append(f"{int(secs)}s")
    else:
        parts.append(f"{secs:.1f}s")

    return " ".join(parts)


def format_size_kb(size_bytes: int) -> str:
    """Format a byte count as kilobytes with two decimals, e.g. ``"12.5 KB"``."""
    return f"{round(size_bytes / 1024, 2)} KB"


# ---------------------------------------------------------------------------
# Rich output helpers
# ---------------------------------------------------------------------------


def print_rule(title: str, color: str = "blue") -> None:
    """Print a full-width separator with a title."""
    console.print(Rule(f"[bold {color}]{title}[/bold {color}]", style=color))


def print_summary_table(data: dict[str, str], title: str = "Summary") -> None:
    """Print a two-column key/value summary table."""
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("Item", style="dim", no_wrap=True)
    table.add_column("Value")

    for key, value in data.items():
        table.add_row(key, str(value))

    console.print(table)
    console.print()


def print_output(lines: list[str]) -> None:
    """Print captured tool output verbatim (no markup interpretation)."""
    for line in lines:
        console.print(line, markup=False, highlight=False)


def print_success(message: str) -> None:
    """Print a green success message."""
    console.print(f"[bold green]{escape(message)}[/bold green]")


def print_error(message: str) -> None:
    """Print a red error message."""
    console.print(f"[bold red]{escape(message)}[/bold red]")


def print_warning(message: str) -> None:
    """Print a yellow warning message."""
    console.print(f"[bold yellow]{escape(message)}[/bold yellow]")


def print_info(message: str) -> None:
    console.print(f"[cyan]{escape(message)}[/cyan]")

"""AI debug side-file aggregation (development builds).

After a successful dev-mode compile, every ``*.ai.map`` side-file under the
workspace's ``src/`` is copied into ``build/debug`` under a flattened name and
summarised in a single ``index.json``::

    {
      "schema": "https://phpx.dev/schemas/ai-debug-index/v1.json",
      "generated_at": "2026-01-15T10:30:00+00:00",
      "build_mode": "development",
      "files": {
        "/app/src/Components/Button.php": {
          "source": "src/Components/Button.phpx",
          "ai_map": "build/debug/Components-Button.php.ai.map",
          "checksum": "…",
          "jsx_elements": 3,
          "compilation_time_ms": 1.25
        }
      },
      "statistics": {"total_files": 1, "total_jsx_elements": 3, ...}
    }

Finding no side-files is the normal case when no PHPX source was compiled;
an empty but well-formed index is written.
"""

from __future__ import annotations

import hashlib
import json
import logging
import shutil
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from wasmpack.builder.compiler import SIDE_FILE_SUFFIX, find_side_files
from wasmpack.utils import console, ensure_dir, print_warning

logger = logging.getLogger(__name__)

INDEX_SCHEMA = "https://phpx.dev/schemas/ai-debug-index/v1.json"
INDEX_FILENAME = "index.json"


class DebugFileEntry(BaseModel):
    source: str
    ai_map: str
    checksum: str | None = None
    jsx_elements: int = 0
    compilation_time_ms: float = 0.0


class DebugStatistics(BaseModel):
    total_files: int = 0
    total_jsx_elements: int = 0
    total_compilation_time_ms: float = 0.0
    build_timestamp: int = 0


class DebugIndex(BaseModel):
    schema_id: str = Field(default=INDEX_SCHEMA, alias="schema")
    generated_at: str
    build_mode: str = "development"
    compiler_version: str | None = None
    files: dict[str, DebugFileEntry] = Field(default_factory=dict)
    statistics: DebugStatistics = Field(default_factory=DebugStatistics)

    model_config = {"populate_by_name": True}

    def to_json(self) -> str:
        return self.model_dump_json(indent=2, by_alias=True)


def flatten_name(relative_path: str) -> str:
    """``"Components/Button.php.ai.map"`` -> ``"Components-Button.php.ai.map"``."""
    return relative_path.replace("/", "-")


def _read_side_file(path: Path) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        print_warning(f"  Unreadable AI map {path.name}: {exc}")
        return {}
    return data if isinstance(data, dict) else {}


def _section(content: dict[str, Any], key: str) -> dict[str, Any]:
    value = content.get(key)
    return value if isinstance(value, dict) else {}


def _number(stats: dict[str, Any], key: str, kind: type, map_name: str) -> Any:
    """Read a numeric statistic, falling back to 0 when it is not a number."""
    value = stats.get(key) or 0
    try:
        return kind(value)
    except (TypeError, ValueError, OverflowError):
        print_warning(f"  Ignoring non-numeric {key} in AI map {map_name}: {value!r}")
        return kind(0)


def _file_checksum(path: Path) -> str | None:
    if not path.is_file():
        return None
    return hashlib.sha256(path.read_bytes()).hexdigest()


def _project_relative_source(source_file: str, workspace_src: Path) -> str:
    prefix = str(workspace_src).rstrip("/") + "/"
    if source_file.startswith(prefix):
        return "src/" + source_file[len(prefix):]
    return source_file


def aggregate_debug_maps(
    workspace_src: Path,
    debug_dir: Path,
    project_root: Path,
    mount_point: str = "/app",
    build_mode: str = "development",
    compiler_version: str | None = None,
    side_files: list[Path] | None = None,
) -> DebugIndex:
    """Copy side-files into *debug_dir* and write ``index.json``.

    Args:
        workspace_src: The compiled ``src/`` tree inside the workspace.
        debug_dir: Destination directory (``<project>/build/debug``).
        project_root: Used to express ``ai_map`` paths project-relative.
        mount_point: Virtual root the workspace is mounted at in the bundle.
        build_mode: Tag recorded in the index.
        compiler_version: Optional compiler version recorded in the index.
        side_files: Side-files already collected by the compiler; discovered
            under *workspace_src* when omitted.

    Returns:
        The index that was written.
    """
    console.print()
    console.print("Collecting AI source maps for development debugging...")

    workspace_src = Path(workspace_src)
    debug_dir = ensure_dir(debug_dir)
    maps = side_files if side_files is not None else find_side_files(workspace_src)

    index = DebugIndex(
        generated_at=datetime.now(timezone.utc).isoformat(),
        build_mode=build_mode,
        compiler_version=compiler_version,
        statistics=DebugStatistics(build_timestamp=int(time.time())),
    )

    if not maps:
        console.print("  [dim]No AI source maps found (normal if no PHPX files were compiled)[/dim]")
    else:
        console.print(f"  Found {len(maps)} AI source map(s)")

    try:
        debug_rel = debug_dir.resolve().relative_to(Path(project_root).resolve()).as_posix()
    except ValueError:
        debug_rel = str(debug_dir)

    for map_path in maps:
        relative = map_path.relative_to(workspace_src).as_posix()
        compiled = relative[: -len(SIDE_FILE_SUFFIX)]
        flattened = flatten_name(relative)

        shutil.copyfile(map_path, debug_dir / flattened)
        content = _read_side_file(map_path)
        summary = _section(content, "summary")
        stats = _section(content, "statistics")

        source = _project_relative_source(str(summary.get("source_file", "unknown")), workspace_src)
        checksum = summary.get("compiled_checksum")
        if not isinstance(checksum, str) or not checksum:
            checksum = _file_checksum(workspace_src / compiled)
        jsx = _number(stats, "jsx_elements_transformed", int, map_path.name)
        elapsed = _number(stats, "compilation_time_ms", float, map_path.name)

        virtual_path = f"{mount_point.rstrip('/')}/src/{compiled}"
        index.files[virtual_path] = DebugFileEntry(
            source=source,
            ai_map=f"{debug_rel}/{flattened}",
            checksum=checksum,
            jsx_elements=jsx,
            compilation_time_ms=elapsed,
        )
        index.statistics.total_files += 1
        index.statistics.total_jsx_elements += jsx
        index.statistics.total_compilation_time_ms += elapsed
        console.print(f"  [green]+[/green] Exported: {flattened}")

    index_path = debug_dir / INDEX_FILENAME
    index_path.write_text(index.to_json(), encoding="utf-8")
    logger.debug("Wrote debug index %s", index_path)

    console.print(f"  [green]+[/green] Generated {INDEX_FILENAME} with {len(index.files)} file(s)")
    console.print(f"  AI Debug Directory: {debug_dir}")
    console.print(f"  Total JSX Elements: {index.statistics.total_jsx_elements}")
    console.print(
        f"  Total Compilation Time: {round(index.statistics.total_compilation_time_ms, 2)}ms"
    )
    console.print()
    return index

"""wasmpack build pipeline orchestrator.

Implements one build attempt as a small state machine:

    INIT -> VENDOR_RESOLVING -> WORKSPACE_POPULATING -> COMPILING
         -> [METADATA_AGGREGATING] -> PACKAGING -> DONE

Any ``BuildError`` moves the run to FAILED: the workspace is destroyed (if one
was created), the error and captured tool output are surfaced, and the
previous output artifact is left exactly as it was. A successful run keeps its
workspace on disk for post-build inspection.

The pipeline keeps no state between runs; each ``run`` call is a fresh state
machine over a fresh workspace.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from wasmpack.builder.compiler import CompileOptions, CompilerInvoker
from wasmpack.builder.debug_maps import DebugIndex, aggregate_debug_maps
from wasmpack.builder.packager import PackagerInvoker
from wasmpack.builder.workspace import WorkspaceManager
from wasmpack.config import Config
from wasmpack.errors import BuildError, WorkspaceIOError
from wasmpack.project import BuildRequest
from wasmpack.utils import (
    console,
    format_duration,
    format_size_kb,
    print_error,
    print_output,
    print_success,
    print_summary_table,
    print_warning,
)
from wasmpack.vendor.cache import CacheResolution, VendorCache
from wasmpack.vendor.installer import ComposerInstaller

logger = logging.getLogger(__name__)


class BuildStage(str, Enum):
    INIT = "init"
    VENDOR_RESOLVING = "vendor-resolving"
    WORKSPACE_POPULATING = "workspace-populating"
    COMPILING = "compiling"
    METADATA_AGGREGATING = "metadata-aggregating"
    PACKAGING = "packaging"
    DONE = "done"
    FAILED = "failed"


@dataclass
class BuildResult:
    """Outcome of one ``BuildPipeline.run``."""

    success: bool = False
    stage: BuildStage = BuildStage.INIT
    stages: list[BuildStage] = field(default_factory=lambda: [BuildStage.INIT])
    failed_stage: BuildStage | None = None
    error: BuildError | None = None
    output_lines: list[str] = field(default_factory=list)
    workspace: Path | None = None
    cache: CacheResolution | None = None
    artifact_path: Path | None = None
    artifact_size: int = 0
    debug_index: DebugIndex | None = None
    duration_seconds: float = 0.0

    def advance(self, stage: BuildStage) -> None:
        self.stage = stage
        self.stages.append(stage)

    def summary(self) -> str:
        """One-line human-readable summary."""
        if self.success:
            return (
                f"Build completed in {format_duration(self.duration_seconds)}: "
                f"{self.artifact_path} ({format_size_kb(self.artifact_size)})"
            )
        stage = self.failed_stage.value if self.failed_stage else "?"
        kind = self.error.kind if self.error else "error"
        return f"Build failed during {stage} [{kind}]: {self.error}"


def _resolve_executable(command: list[str], project_root: Path) -> list[str]:
    """Anchor a project-relative executable (``vendor/.../bin/x``) at *project_root*."""
    if not command:
        return command
    head = Path(command[0])
    if not head.is_absolute() and len(head.parts) > 1:
        return [str(project_root / head), *command[1:]]
    return list(command)


def _anchor_tool_paths(command: list[str], project_root: Path) -> list[str]:
    """Anchor every project-relative path in a tool prefix (``php vendor/.../bin/x``).

    Used for tools that run outside the project directory.
    """
    anchored = []
    for part in command:
        path = Path(part)
        if not part.startswith("-") and not path.is_absolute() and len(path.parts) > 1:
            anchored.append(str(project_root / path))
        else:
            anchored.append(part)
    return anchored


class BuildPipeline:
    """Runs vendor resolution, workspace population, compile and pack in sequence.

    Attributes:
        vendor_cache: Resolves (and on a miss, installs) the vendor directory.
        workspaces: Creates and tears down per-build workspaces.
        compiler: In-place compiler over ``workspace/src``.
        packager: Bundles the workspace into the output artifact.
    """

    def __init__(
        self,
        vendor_cache: VendorCache,
        workspaces: WorkspaceManager,
        compiler: CompilerInvoker,
        packager: PackagerInvoker,
        compiler_version: str | None = None,
    ) -> None:
        self.vendor_cache = vendor_cache
        self.workspaces = workspaces
        self.compiler = compiler
        self.packager = packager
        self.compiler_version = compiler_version

    @classmethod
    def from_config(cls, config: Config, project_root: Path) -> "BuildPipeline":
        """Wire the real external tools for a project."""
        root = Path(project_root).resolve()
        tools = config.tools
        return cls(
            vendor_cache=VendorCache(
                config.cache.temp_root,
                ComposerInstaller(tools.installer, vendor_env=tools.installer_vendor_env),
                atomic_commit=config.cache.atomic_commit,
            ),
            workspaces=WorkspaceManager(config.cache.temp_root),
            compiler=CompilerInvoker(
                _resolve_executable(tools.compiler, root),
                base_args=tools.compiler_args,
                cwd=root,
            ),
            packager=PackagerInvoker(
                _anchor_tool_paths(tools.packager, root),
                extra_args=tools.packager_args,
                excludes=tools.packager_excludes,
            ),
            compiler_version=tools.compiler_version,
        )

    async def run(self, request: BuildRequest) -> BuildResult:
        """Execute one build attempt.

        Build failures are reported through the returned ``BuildResult``
        rather than raised. Any other exception still tears down the
        workspace and then propagates.
        """
        started = time.monotonic()
        result = BuildResult()
        workspace: Path | None = None
        console.print(f"Packing [bold]{request.project_name}[/bold]...")

        try:
            result.advance(BuildStage.VENDOR_RESOLVING)
            result.cache = await self.vendor_cache.resolve(
                request.project_name,
                request.descriptor_files,
                request.project_root,
            )

            result.advance(BuildStage.WORKSPACE_POPULATING)
            workspace = self.workspaces.create(request.project_name)
            result.workspace = workspace
            self.workspaces.populate(
                workspace,
                request.bootstrap_file,
                request.source_dir,
                result.cache.path,
            )

            result.advance(BuildStage.COMPILING)
            options = CompileOptions(
                emit_debug_metadata=request.emit_debug_metadata,
                emit_browser_source_maps=request.emit_browser_source_maps,
            )
            compiled = await self.compiler.compile(workspace / "src", options)
            result.output_lines.extend(compiled.output_lines)
            print_output(compiled.output_lines)

            if request.emit_debug_metadata:
                result.advance(BuildStage.METADATA_AGGREGATING)
                try:
                    result.debug_index = aggregate_debug_maps(
                        workspace / "src",
                        request.debug_dir,
                        request.project_root,
                        mount_point=request.virtual_mount_point,
                        compiler_version=self.compiler_version,
                        side_files=compiled.side_files,
                    )
                except OSError as exc:
                    raise WorkspaceIOError(
                        f"Failed to export debug metadata to {request.debug_dir}: {exc}",
                        path=request.debug_dir,
                    ) from exc

            result.advance(BuildStage.PACKAGING)
            packed = await self.packager.pack(
                workspace,
                request.virtual_mount_point,
                request.output_artifact,
            )
            result.output_lines.extend(packed.output_lines)
            result.artifact_path = packed.artifact_path
            result.artifact_size = packed.size_bytes

            result.advance(BuildStage.DONE)
            result.success = True

        except BuildError as exc:
            result.failed_stage = result.stage
            result.error = exc
            result.output_lines.extend(exc.output)
            result.advance(BuildStage.FAILED)
            if workspace is not None:
                self._teardown(workspace)

        except BaseException:
            if workspace is not None:
                self._teardown(workspace)
            raise

        finally:
            result.duration_seconds = time.monotonic() - started

        return result

    def _teardown(self, workspace: Path) -> None:
        try:
            self.workspaces.destroy(workspace)
        except WorkspaceIOError as exc:
            # Keep reporting the build failure, not the cleanup one.
            print_warning(f"Could not remove workspace after failure: {exc}")
        else:
            logger.info("Removed workspace %s after failed build", workspace)


def print_build_report(result: BuildResult) -> None:
    """Print the user-facing outcome of a build.

    Failures print the captured tool output verbatim followed by a one-line
    summary; successes report the artifact size.
    """
    if result.success:
        console.print()
        print_success("Build completed successfully!")
        rows = {
            "Data file": str(result.artifact_path),
            "Data file size": format_size_kb(result.artifact_size),
            "Workspace (kept)": str(result.workspace),
            "Duration": format_duration(result.duration_seconds),
        }
        if result.cache is not None:
            rows["Vendor cache"] = f"{'hit' if result.cache.hit else 'miss'} ({result.cache.key})"
        print_summary_table(rows, title="Build")
        return

    error = result.error
    if error is not None and error.output:
        console.print()
        print_output(error.output)
    print_error(result.summary())

"""External bundler invocation.

Serialises a populated workspace into a preload data file plus its loader
script. The bundler runs inside a staging directory next to the artifact and
is given bare output names (``php-web.data``, ``--js-output=php-web.data.js``),
so whatever it embeds in the loader names the final file rather than the
staging path. The pair is moved into place only after a clean exit, so a
failed pack never clobbers the artifact of an earlier successful build.

Relative tool paths in ``command`` are therefore not resolved against the
project; pass them absolute (``BuildPipeline.from_config`` does).
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from wasmpack.builder.workspace import new_build_token
from wasmpack.errors import PackagingFailed
from wasmpack.utils import CommandRunner, console, remove_tree, run_tool

logger = logging.getLogger(__name__)


@dataclass
class PackResult:
    exit_code: int
    artifact_path: Path
    loader_path: Path
    size_bytes: int = 0
    output_lines: list[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return self.exit_code == 0


class PackagerInvoker:
    """Runs the file packager with ``--preload <workspace>@<mount>``."""

    def __init__(
        self,
        command: list[str],
        extra_args: list[str] | None = None,
        excludes: list[str] | None = None,
        runner: CommandRunner = run_tool,
    ):
        self.command = list(command)
        self.extra_args = list(extra_args or [])
        self.excludes = list(excludes or [])
        self.runner = runner

    def build_command(self, workspace_path: Path, mount_point: str, artifact: Path) -> list[str]:
        loader = artifact.with_name(artifact.name + ".js")
        cmd = [
            *self.command,
            str(artifact),
            "--preload",
            f"{Path(workspace_path).resolve()}@{mount_point}",
            f"--js-output={loader}",
        ]
        cmd.extend(arg for arg in self.extra_args if not arg.startswith("--export-name"))
        if self.excludes:
            cmd.append("--exclude")
            cmd.extend(self.excludes)
        cmd.extend(arg for arg in self.extra_args if arg.startswith("--export-name"))
        return cmd

    async def pack(self, workspace_path: Path, mount_point: str, output_artifact: Path) -> PackResult:
        """Bundle *workspace_path* into *output_artifact* (and ``<artifact>.js``).

        Raises:
            PackagingFailed: If the bundler exits non-zero or the staged
                outputs cannot be moved into place. The previous artifact, if
                any, is left untouched in both cases.
        """
        output_artifact = Path(output_artifact)
        loader = output_artifact.with_name(output_artifact.name + ".js")
        staging = output_artifact.parent / f".{output_artifact.name}.staging-{new_build_token()}"
        staged_artifact = staging / output_artifact.name
        staged_loader = staging / loader.name

        console.print("Packing into WebAssembly data file...")
        try:
            staging.mkdir(parents=True)
            tool = await self.runner(
                self.build_command(workspace_path, mount_point, Path(output_artifact.name)),
                cwd=staging,
            )
            result = PackResult(
                exit_code=tool.exit_code,
                artifact_path=output_artifact,
                loader_path=loader,
                output_lines=tool.output_lines,
                duration_seconds=tool.duration_seconds,
            )
            if not result.success:
                raise PackagingFailed(
                    f"Packing failed with return code: {result.exit_code}",
                    result=result,
                )
            if not staged_artifact.is_file():
                raise PackagingFailed(
                    f"Packager exited 0 but produced no {staged_artifact.name}",
                    result=result,
                )

            os.replace(staged_artifact, output_artifact)
            if staged_loader.is_file():
                os.replace(staged_loader, loader)
            else:
                logger.warning("Packager produced no loader script %s", staged_loader.name)
        except OSError as exc:
            raise PackagingFailed(f"Cannot stage packaged output: {exc}") from exc
        finally:
            remove_tree(staging)

        result.size_bytes = output_artifact.stat().st_size
        console.print("[green]Packing completed successfully[/green]")
        return result

"""Project discovery and the immutable per-build request."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from wasmpack.config import Config
from wasmpack.errors import ProjectRootNotFound


def find_project_root(start: str | Path | None = None, marker: str = "composer.json") -> Path:
    """Walk upward from *start* until a directory containing *marker* is found.

    Raises:
        ProjectRootNotFound: If the filesystem root is reached without a match.
    """
    origin = Path(start or Path.cwd()).resolve()
    for candidate in (origin, *origin.parents):
        if (candidate / marker).is_file():
            return candidate
    raise ProjectRootNotFound(origin, marker)


@dataclass(frozen=True)
class BuildRequest:
    """Everything one build attempt needs, resolved to absolute paths."""

    project_root: Path
    project_name: str
    source_dir: Path
    bootstrap_file: Path
    descriptor_files: tuple[Path, ...]
    output_artifact: Path
    debug_dir: Path
    virtual_mount_point: str = "/app"
    emit_debug_metadata: bool = False
    emit_browser_source_maps: bool = False

    @classmethod
    def from_config(cls, config: Config, project_root: Path) -> "BuildRequest":
        root = Path(project_root).resolve()
        return cls(
            project_root=root,
            project_name=root.name,
            source_dir=root / config.source_dir,
            bootstrap_file=root / config.bootstrap_file,
            descriptor_files=tuple(root / name for name in config.descriptor_files),
            output_artifact=root / config.build_dir / config.artifact_name,
            debug_dir=root / config.debug_dir,
            virtual_mount_point=config.virtual_mount_point,
            emit_debug_metadata=config.dev_mode,
            emit_browser_source_maps=config.html_maps,
        )

    @property
    def loader_script(self) -> Path:
        """The companion loader the packager writes next to the artifact."""
        return self.output_artifact.with_name(self.output_artifact.name + ".js")

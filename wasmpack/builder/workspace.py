"""Temporary build workspace management.

Each build attempt gets its own directory under the temp root, named
``{project}-{token}``. The workspace receives real copies of the bootstrap
file, the full source tree and the cached vendor directory, so the compiler
can transform sources in place without touching the project or the cache.
"""

from __future__ import annotations

import logging
import re
import shutil
import uuid
from dataclasses import dataclass
from pathlib import Path

from wasmpack.errors import WorkspaceIOError
from wasmpack.utils import console, remove_tree

logger = logging.getLogger(__name__)


@dataclass
class WorkspaceInfo:
    """A workspace directory found on disk."""

    project_name: str
    token: str
    path: Path
    modified_at: float


def new_build_token() -> str:
    """A random 32-character hex token; never collides with ``vendor-<key>`` names."""
    return uuid.uuid4().hex


class WorkspaceManager:
    """Creates, populates and destroys per-build workspaces under *temp_root*.

    Successful builds keep their workspace for inspection; removing them is an
    explicit operation (``clean``), never a side effect of building.
    """

    def __init__(self, temp_root: str | Path):
        self.temp_root = Path(temp_root)

    def path_for(self, project_name: str, token: str) -> Path:
        return self.temp_root / f"{project_name}-{token}"

    def create(self, project_name: str, token: str | None = None) -> Path:
        """Create a fresh, empty workspace directory and return its path.

        A leftover directory with the same name is removed first.

        Raises:
            WorkspaceIOError: If the directory cannot be removed or created.
        """
        path = self.path_for(project_name, token or new_build_token())
        try:
            if path.exists():
                logger.warning("Removing stale workspace %s", path)
                remove_tree(path)
            path.mkdir(parents=True)
        except OSError as exc:
            raise WorkspaceIOError(f"Cannot create workspace {path}: {exc}", path=path) from exc

        console.print(f"Using temporary directory: {path}")
        return path

    def populate(
        self,
        path: Path,
        bootstrap_file: Path,
        source_dir: Path,
        dependency_dir: Path,
    ) -> None:
        """Copy the bootstrap file, ``src/`` and ``vendor/`` into the workspace.

        Sources are copied in full with no exclusions. Symlinks are followed
        so the workspace never points back into the project or the cache.

        Raises:
            WorkspaceIOError: On any missing input or failed copy.
        """
        path = Path(path)
        try:
            console.print(f"Copying {bootstrap_file.name}...")
            shutil.copyfile(bootstrap_file, path / bootstrap_file.name)

            console.print("Copying src directory...")
            shutil.copytree(source_dir, path / "src", symlinks=False)

            console.print("Copying vendor directory from cache...")
            shutil.copytree(dependency_dir, path / "vendor", symlinks=False)
        except (OSError, shutil.Error) as exc:
            raise WorkspaceIOError(f"Failed to populate workspace {path}: {exc}", path=path) from exc

        console.print("[green]Files copied successfully[/green]")

    def destroy(self, path: Path) -> None:
        """Recursively delete a workspace. Idempotent.

        Raises:
            WorkspaceIOError: If something other than a vanished entry stops the delete.
        """
        try:
            remove_tree(path)
        except OSError as exc:
            raise WorkspaceIOError(f"Failed to remove workspace {path}: {exc}", path=Path(path)) from exc
        logger.debug("Destroyed workspace %s", path)

    # ------------------------------------------------------------------
    # Explicit cleanup of retained workspaces
    # ------------------------------------------------------------------

    def list_workspaces(self, project_name: str) -> list[WorkspaceInfo]:
        """Workspaces of *project_name* on disk, newest first."""
        if not self.temp_root.is_dir():
            return []

        pattern = re.compile(rf"^{re.escape(project_name)}-(?P<token>[0-9a-f]{{32}})$")
        found: list[WorkspaceInfo] = []
        for child in self.temp_root.iterdir():
            match = pattern.match(child.name)
            if match and child.is_dir():
                found.append(
                    WorkspaceInfo(
                        project_name=project_name,
                        token=match.group("token"),
                        path=child,
                        modified_at=child.stat().st_mtime,
                    )
                )
        found.sort(key=lambda w: w.modified_at, reverse=True)
        return found

    def clean(self, project_name: str, keep: int = 0) -> list[Path]:
        """Remove all but the *keep* most recent workspaces of a project."""
        removed: list[Path] = []
        for info in self.list_workspaces(project_name)[max(keep, 0):]:
            self.destroy(info.path)
            removed.append(info.path)
        return removed

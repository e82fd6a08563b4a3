"""Error kinds raised by the build components.

Every error carries the captured output of the external process (if any) so
that callers can print it verbatim next to a one-line summary. Components raise
these unchanged; the pipeline only adds workspace teardown on top.
"""

from __future__ import annotations

from pathlib import Path


class BuildError(Exception):
    """Base class for every failure that aborts a build."""

    kind = "build-error"

    def __init__(self, message: str, output: list[str] | None = None):
        self.output: list[str] = list(output or [])
        super().__init__(message)


class ProjectRootNotFound(BuildError):
    """No project marker file was found walking upward from the start directory."""

    kind = "project-root-not-found"

    def __init__(self, start: Path, marker: str):
        self.start = start
        self.marker = marker
        super().__init__(
            f"Could not find project root (no {marker} found above {start})."
        )


class DescriptorUnreadable(BuildError):
    """A dependency descriptor file is missing or cannot be read."""

    kind = "descriptor-unreadable"

    def __init__(self, path: Path | None, reason: str = ""):
        self.path = path
        message = f"Dependency descriptor unreadable: {path}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class DependencyInstallFailed(BuildError):
    kind = "dependency-install-failed"


class WorkspaceIOError(BuildError):
    """A copy, mkdir or delete inside a workspace failed."""

    kind = "workspace-io-error"

    def __init__(self, message: str, path: Path | None = None):
        self.path = path
        super().__init__(message)


class CompilationFailed(BuildError):
    kind = "compilation-failed"

    def __init__(self, message: str, result=None):
        self.result = result
        super().__init__(message, output=getattr(result, "output_lines", None))


class PackagingFailed(BuildError):
    kind = "packaging-failed"

    def __init__(self, message: str, result=None):
        self.result = result
        super().__init__(message, output=getattr(result, "output_lines", None))


class ExportError(BuildError):
    """The public export step could not find or write a bundle file."""

    kind = "export-error"


class ConfigError(BuildError):
    """The project config file or an environment override is invalid."""

    kind = "config-invalid"

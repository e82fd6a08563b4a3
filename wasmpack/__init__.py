"""wasmpack: build PHP/PHPX projects into WebAssembly preload bundles.

Key classes:
    BuildPipeline  - One build attempt: vendor cache, workspace, compile, pack
    BuildRequest   - Immutable per-build inputs resolved from a Config
    Config         - Typed settings (project file, environment, CLI flags)
    Watcher        - Debounced rebuild-on-change loop
"""

from .config import Config
from .errors import BuildError
from .pipeline import BuildPipeline, BuildResult, BuildStage
from .project import BuildRequest, find_project_root
from .watcher import Watcher

__version__ = "0.1.0"

__all__ = [
    # Configuration
    "Config",
    "BuildRequest",
    "find_project_root",
    # Building
    "BuildPipeline",
    "BuildResult",
    "BuildStage",
    "BuildError",
    # Watching
    "Watcher",
]

"""wasmpack builder module.

Everything that happens to one build attempt after dependencies are resolved:
workspace lifecycle, in-place compilation, debug side-file aggregation and
packaging.

Key classes:
    WorkspaceManager  - Temporary workspace create/populate/destroy
    CompilerInvoker   - External PHPX compiler invocation
    PackagerInvoker   - External file packager invocation
    DebugIndex        - Aggregated AI debug side-file index
"""

from .compiler import CompileOptions, CompileResult, CompilerInvoker, find_side_files
from .debug_maps import DebugIndex, aggregate_debug_maps
from .packager import PackagerInvoker, PackResult
from .workspace import WorkspaceInfo, WorkspaceManager, new_build_token

__all__ = [
    # Workspace management
    "WorkspaceManager",
    "WorkspaceInfo",
    "new_build_token",
    # Compiler
    "CompilerInvoker",
    "CompileOptions",
    "CompileResult",
    "find_side_files",
    # Debug metadata
    "DebugIndex",
    "aggregate_debug_maps",
    # Packager
    "PackagerInvoker",
    "PackResult",
]

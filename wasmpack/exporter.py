"""Publish a built bundle into the public directory.

Copies the runtime ``.wasm`` and the preload data file, and writes a runtime
module with the data loader spliced in, so the page only has to load one
module. The remote package base is rewritten to live under ``BASE_URL``.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path

from wasmpack.config import Config
from wasmpack.errors import ExportError
from wasmpack.utils import console, ensure_dir

logger = logging.getLogger(__name__)

MODULE_ANCHOR = "var moduleOverrides = Object.assign({}, Module);"


@dataclass
class ExportResult:
    public_dir: Path
    files: list[Path]


def splice_loader(module_source: str, loader_source: str, data_name: str, base_url: str) -> str:
    """Insert *loader_source* after the module-overrides line and point the
    remote package base at ``{base_url}/build/{data_name}``."""
    if MODULE_ANCHOR not in module_source:
        raise ExportError(f"Runtime module does not contain the loader anchor: {MODULE_ANCHOR}")
    spliced = module_source.replace(MODULE_ANCHOR, f"{MODULE_ANCHOR}\n{loader_source}")
    return spliced.replace(
        f"var REMOTE_PACKAGE_BASE = '{data_name}';",
        f"var REMOTE_PACKAGE_BASE = '{base_url}/build/{data_name}';",
    )


def export_bundle(config: Config, project_root: Path) -> ExportResult:
    """Copy the built bundle to ``<project>/<export.public_dir>``.

    Raises:
        ExportError: If a build output is missing or cannot be written.
    """
    root = Path(project_root)
    build_dir = root / config.build_dir
    public_dir = root / config.export.public_dir
    data_name = config.artifact_name

    wasm = build_dir / config.export.runtime_wasm
    module = build_dir / config.export.runtime_module
    data = build_dir / data_name
    loader = build_dir / f"{data_name}.js"

    for required in (wasm, module, data, loader):
        if not required.is_file():
            raise ExportError(f"Missing build output: {required}")

    console.print("Exporting bundle...")
    try:
        ensure_dir(public_dir)
        shutil.copyfile(wasm, public_dir / wasm.name)
        shutil.copyfile(data, public_dir / data.name)
        spliced = splice_loader(
            module.read_text(encoding="utf-8"),
            loader.read_text(encoding="utf-8"),
            data_name,
            config.export.base_url,
        )
        (public_dir / module.name).write_text(spliced, encoding="utf-8")
    except OSError as exc:
        raise ExportError(f"Export to {public_dir} failed: {exc}") from exc

    logger.debug("Exported bundle to %s", public_dir)
    console.print("[green]Export completed successfully![/green]")
    return ExportResult(
        public_dir=public_dir,
        files=[public_dir / wasm.name, public_dir / data.name, public_dir / module.name],
    )

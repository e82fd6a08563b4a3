"""wasmpack configuration.

Centralised, typed configuration for the build pipeline, the watcher and the
export step. All settings use Pydantic v2 models so they can be validated at
construction time and serialised to/from JSON or environment variables.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from wasmpack.errors import ConfigError

CONFIG_FILENAME = "wasmpack.json"

DEFAULT_PACKAGER_EXCLUDES = [
    "composer.*",
    ".git/**",
    "build/**",
    "public/**",
    "scripts/**",
    ".gitignore",
    "LICENSE",
    "README.md",
]

DEFAULT_WATCH_EXCLUDES = [
    r"(^|/)\.git(/|$)",
    r"(^|/)node_modules(/|$)",
    r"(^|/)vendor(/|$)",
    r"(^|/)build(/|$)",
    r"(^|/)public/build(/|$)",
    r"(^|/)test-results(/|$)",
    r"\.(swp|swx|tmp)$",
    r"~$",
]


class ToolsConfig(BaseModel):
    """Command lines of the external collaborators.

    Relative executable paths are resolved against the project root at build
    time, so the defaults point at the tools Composer installs in ``vendor/``.
    """

    installer: list[str] = Field(
        default=["composer", "install", "--no-dev", "--no-interaction", "--no-scripts"]
    )
    installer_vendor_env: str = Field(
        default="COMPOSER_VENDOR_DIR",
        description="Environment variable that redirects the installer's output directory",
    )
    compiler: list[str] = Field(default=["vendor/syntaxx/phpx-compiler/bin/compile"])
    compiler_args: list[str] = Field(default=["--compile-php-files"])
    compiler_version: str | None = Field(default=None)
    packager: list[str] = Field(
        default=["php", "vendor/syntaxx/webassembly-packer/bin/file-packager"]
    )
    packager_args: list[str] = Field(
        default=["--use-preload-cache", "--no-node", "--export-name=createPhpModule"]
    )
    packager_excludes: list[str] = Field(default_factory=lambda: list(DEFAULT_PACKAGER_EXCLUDES))


class CacheConfig(BaseModel):
    """Location and population mode of the vendor cache and workspaces."""

    temp_root: Path = Field(default=Path("/tmp/phpx-build"))
    atomic_commit: bool = Field(
        default=False,
        description="Install into a staging sibling and rename it into place",
    )


class WatchConfig(BaseModel):
    """Watcher tuning."""

    debounce_seconds: float = Field(default=2.0, gt=0)
    paths: list[str] = Field(default=["src", "composer.json", "composer.lock"])
    exclude_patterns: list[str] = Field(default_factory=lambda: list(DEFAULT_WATCH_EXCLUDES))
    export_after_build: bool = Field(default=True)


class ExportConfig(BaseModel):
    """Where the built bundle is published and how the loader is wired in."""

    public_dir: str = Field(default="public/build")
    base_url: str = Field(default="")
    runtime_wasm: str = Field(default="php-vrzno-web.wasm")
    runtime_module: str = Field(default="php-vrzno-web.mjs")


class Config(BaseModel):
    """Global wasmpack configuration.

    Project-relative paths are stored as strings and resolved against the
    project root by ``BuildRequest``. Instances are typically created once by
    the CLI (``Config.discover``) and passed through the rest of the system.
    """

    project_marker: str = Field(default="composer.json")
    source_dir: str = Field(default="src")
    bootstrap_file: str = Field(default="bootstrap.php")
    descriptor_files: list[str] = Field(default=["composer.json", "composer.lock"])
    build_dir: str = Field(default="build")
    artifact_name: str = Field(default="php-web.data")
    debug_dir: str = Field(default="build/debug")
    virtual_mount_point: str = Field(default="/app")

    dev_mode: bool = Field(default=False, description="Emit AI debug side-files and aggregate them")
    html_maps: bool = Field(default=False, description="Emit browser-facing source maps")

    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    watch: WatchConfig = Field(default_factory=WatchConfig)
    export: ExportConfig = Field(default_factory=ExportConfig)

    # ------------------------------------------------------------------
    # Serialisation helpers
    # ------------------------------------------------------------------

    def save(self, path: Path) -> Path:
        """Persist the configuration to a JSON file and return its path."""
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(self.model_dump_json(indent=2), encoding="utf-8")
        return target

    @classmethod
    def load(cls, path: Path) -> "Config":
        """Load a previously-saved configuration from JSON."""
        raw = Path(path).read_text(encoding="utf-8")
        return cls.model_validate_json(raw)

    def with_env(self, environ: dict[str, str] | None = None) -> "Config":
        """Return a copy with environment overrides applied.

        Recognised variables (all optional):
            WASMPACK_DEV_MODE / PHPX_DEV_MODE, WASMPACK_HTML_MAPS / PHPX_HTML_MAPS
            (``"1"`` enables), WASMPACK_TEMP_ROOT, WASMPACK_DEBOUNCE, BASE_URL.
        """
        env = os.environ if environ is None else environ
        updates: dict[str, Any] = {}

        dev = env.get("WASMPACK_DEV_MODE", env.get("PHPX_DEV_MODE"))
        if dev is not None:
            updates["dev_mode"] = dev == "1"
        html = env.get("WASMPACK_HTML_MAPS", env.get("PHPX_HTML_MAPS"))
        if html is not None:
            updates["html_maps"] = html == "1"

        cache = self.cache
        if env.get("WASMPACK_TEMP_ROOT"):
            cache = cache.model_copy(update={"temp_root": Path(env["WASMPACK_TEMP_ROOT"])})
        watch = self.watch
        if env.get("WASMPACK_DEBOUNCE"):
            try:
                watch = WatchConfig.model_validate(
                    {**watch.model_dump(), "debounce_seconds": env["WASMPACK_DEBOUNCE"]}
                )
            except ValidationError as exc:
                raise ConfigError(
                    f"Invalid WASMPACK_DEBOUNCE={env['WASMPACK_DEBOUNCE']!r}: {exc.errors()[0]['msg']}"
                ) from exc
        export = self.export
        if "BASE_URL" in env:
            export = export.model_copy(update={"base_url": env["BASE_URL"]})

        updates.update(cache=cache, watch=watch, export=export)
        return self.model_copy(update=updates)

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "Config":
        """Build a ``Config`` from defaults plus environment variables."""
        return cls().with_env(environ)

    @classmethod
    def discover(cls, project_root: Path, environ: dict[str, str] | None = None) -> "Config":
        """Load ``<project_root>/wasmpack.json`` if present, then apply the environment."""
        config_path = Path(project_root) / CONFIG_FILENAME
        try:
            base = cls.load(config_path) if config_path.is_file() else cls()
        except (OSError, ValidationError) as exc:
            raise ConfigError(f"Invalid {CONFIG_FILENAME}: {exc}") from exc
        return base.with_env(environ)

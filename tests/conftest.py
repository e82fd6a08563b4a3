"""Shared pytest fixtures for the wasmpack test suite.

Provides reusable fixtures for:
- A minimal PHP project on disk (composer.json, composer.lock, src/, bootstrap.php)
- An isolated temp root for vendor cache entries and workspaces
- ``FakeTools``: a scriptable command runner standing in for composer, the
  compiler and the file packager
- A fully wired ``BuildPipeline`` over those fakes
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from wasmpack.builder.compiler import CompilerInvoker
from wasmpack.builder.packager import PackagerInvoker
from wasmpack.builder.workspace import WorkspaceManager
from wasmpack.config import Config
from wasmpack.pipeline import BuildPipeline
from wasmpack.project import BuildRequest
from wasmpack.utils import ToolResult
from wasmpack.vendor.cache import VendorCache
from wasmpack.vendor.installer import ComposerInstaller


# ---------------------------------------------------------------------------
# Paths & Directories
# ---------------------------------------------------------------------------


@pytest.fixture
def php_project(tmp_path: Path) -> Path:
    """A project named ``myapp`` with a one-file source tree."""
    root = tmp_path / "myapp"
    (root / "src").mkdir(parents=True)
    (root / "composer.json").write_text('{"a":1}', encoding="utf-8")
    (root / "composer.lock").write_text('"L1"', encoding="utf-8")
    (root / "src" / "X").write_text("T", encoding="utf-8")
    (root / "bootstrap.php").write_text("<?php require 'vendor/autoload.php';\n", encoding="utf-8")
    return root


@pytest.fixture
def temp_root(tmp_path: Path) -> Path:
    """Stand-in for /tmp/phpx-build."""
    return tmp_path / "phpx-build"


@pytest.fixture
def config(temp_root: Path) -> Config:
    return Config(cache={"temp_root": temp_root})


@pytest.fixture
def build_request(php_project: Path, config: Config) -> BuildRequest:
    return BuildRequest.from_config(config, php_project)


@pytest.fixture
def dev_request(php_project: Path, config: Config) -> BuildRequest:
    return BuildRequest.from_config(config.model_copy(update={"dev_mode": True}), php_project)


# ---------------------------------------------------------------------------
# Fake external tools
# ---------------------------------------------------------------------------


class FakeTools:
    """Scriptable replacement for every external process.

    Dispatches on the executable name: ``composer`` installs into
    ``$COMPOSER_VENDOR_DIR``, ``compile`` optionally writes compiled files and
    ``.ai.map`` side-files, ``pack`` writes an artifact listing the workspace
    contents. Set ``*_exit`` to a non-zero code to make a tool fail.
    """

    def __init__(self) -> None:
        self.install_exit = 0
        self.compile_exit = 0
        self.pack_exit = 0
        self.side_files: dict[str, Any] = {}
        self.calls: list[list[str]] = []
        self.envs: list[dict[str, str] | None] = []
        self.installs = 0
        self.compiles = 0
        self.packs = 0

    async def run(self, cmd, cwd=None, env=None, timeout=None) -> ToolResult:
        command = [str(part) for part in cmd]
        self.calls.append(command)
        self.envs.append(env)
        tool = command[0]
        if tool == "composer":
            return self._install(command, env or {})
        if tool == "compile":
            return self._compile(command)
        if tool == "pack":
            return self._pack(command, Path(cwd or "."))
        return ToolResult(command, 127, [f"{tool}: command not found"])

    def commands_for(self, tool: str) -> list[list[str]]:
        return [c for c in self.calls if c[0] == tool]

    def _install(self, command: list[str], env: dict[str, str]) -> ToolResult:
        self.installs += 1
        target = Path(env["COMPOSER_VENDOR_DIR"])
        if self.install_exit:
            (target / "partial.php").write_text("half", encoding="utf-8")
            return ToolResult(command, self.install_exit, ["Your requirements could not be resolved"])
        (target / "acme" / "lib").mkdir(parents=True, exist_ok=True)
        (target / "autoload.php").write_text("<?php // autoload", encoding="utf-8")
        (target / "acme" / "lib" / "Lib.php").write_text("<?php class Lib {}", encoding="utf-8")
        return ToolResult(command, 0, ["Installing dependencies from lock file"])

    def _compile(self, command: list[str]) -> ToolResult:
        self.compiles += 1
        if self.compile_exit:
            return ToolResult(command, self.compile_exit, ["PHPX parse error in X on line 1"])
        src = Path(command[-1])
        for compiled, content in self.side_files.items():
            target = src / compiled
            target.parent.mkdir(parents=True, exist_ok=True)
            if not target.exists():
                target.write_text("<?php echo 1;", encoding="utf-8")
            side = src / f"{compiled}.ai.map"
            side.write_text(
                content if isinstance(content, str) else json.dumps(content),
                encoding="utf-8",
            )
        return ToolResult(command, 0, ["Compiled sources"])

    def _pack(self, command: list[str], cwd: Path) -> ToolResult:
        self.packs += 1
        artifact = cwd / command[1]
        workspace = Path(command[command.index("--preload") + 1].rsplit("@", 1)[0])
        loader = cwd / next(a for a in command if a.startswith("--js-output=")).split("=", 1)[1]
        if self.pack_exit:
            artifact.write_text("truncated", encoding="utf-8")
            return ToolResult(command, self.pack_exit, ["file_packager: out of space"])
        listing = sorted(
            f"{p.relative_to(workspace).as_posix()}={p.read_text(encoding='utf-8')}"
            for p in workspace.rglob("*")
            if p.is_file()
        )
        artifact.write_text("\n".join(listing), encoding="utf-8")
        loader.write_text("var Module = {}; // loader", encoding="utf-8")
        return ToolResult(command, 0, ["Packed"])


@pytest.fixture
def fake_tools() -> FakeTools:
    return FakeTools()


def make_pipeline(temp_root: Path, tools: FakeTools, atomic_commit: bool = False) -> BuildPipeline:
    return BuildPipeline(
        vendor_cache=VendorCache(
            temp_root,
            ComposerInstaller(runner=tools.run),
            atomic_commit=atomic_commit,
        ),
        workspaces=WorkspaceManager(temp_root),
        compiler=CompilerInvoker(["compile"], runner=tools.run),
        packager=PackagerInvoker(["pack"], excludes=["composer.*"], runner=tools.run),
    )


@pytest.fixture
def pipeline(temp_root: Path, fake_tools: FakeTools) -> BuildPipeline:
    return make_pipeline(temp_root, fake_tools)


@pytest.fixture
def pipeline_factory(temp_root: Path):
    """Build a pipeline over the given tools (and optionally atomic cache commits)."""

    def _factory(tools: FakeTools, atomic_commit: bool = False) -> BuildPipeline:
        return make_pipeline(temp_root, tools, atomic_commit=atomic_commit)

    return _factory

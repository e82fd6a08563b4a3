"""Unit tests for Config and related Pydantic models (wasmpack.config).

Tests cover:
- ToolsConfig / CacheConfig / WatchConfig / ExportConfig defaults
- Validation (debounce window must be positive)
- save/load round trip
- Environment overrides (with_env / from_env), including the PHPX_* aliases
- discover() reading wasmpack.json from the project root
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from wasmpack.config import (
    CONFIG_FILENAME,
    CacheConfig,
    Config,
    ExportConfig,
    ToolsConfig,
    WatchConfig,
)
from wasmpack.errors import ConfigError


# ---------------------------------------------------------------------------
# Nested models
# ---------------------------------------------------------------------------


class TestToolsConfig:
    @pytest.mark.unit
    def test_installer_is_production_only(self):
        tools = ToolsConfig()
        assert tools.installer == [
            "composer", "install", "--no-dev", "--no-interaction", "--no-scripts",
        ]
        assert tools.installer_vendor_env == "COMPOSER_VENDOR_DIR"

    @pytest.mark.unit
    def test_compiler_points_into_vendor(self):
        tools = ToolsConfig()
        assert tools.compiler == ["vendor/syntaxx/phpx-compiler/bin/compile"]
        assert tools.compiler_args == ["--compile-php-files"]

    @pytest.mark.unit
    def test_packager_defaults(self):
        tools = ToolsConfig()
        assert tools.packager[0] == "php"
        assert "--export-name=createPhpModule" in tools.packager_args
        assert "composer.*" in tools.packager_excludes
        assert "README.md" in tools.packager_excludes

    @pytest.mark.unit
    def test_excludes_are_not_shared_between_instances(self):
        a = ToolsConfig()
        a.packager_excludes.append("extra/**")
        assert "extra/**" not in ToolsConfig().packager_excludes


class TestCacheConfig:
    @pytest.mark.unit
    def test_defaults(self):
        cache = CacheConfig()
        assert cache.temp_root == Path("/tmp/phpx-build")
        assert cache.atomic_commit is False


class TestWatchConfig:
    @pytest.mark.unit
    def test_defaults(self):
        watch = WatchConfig()
        assert watch.debounce_seconds == 2.0
        assert watch.paths == ["src", "composer.json", "composer.lock"]
        assert watch.export_after_build is True
        assert len(watch.exclude_patterns) > 0

    @pytest.mark.unit
    @pytest.mark.parametrize("value", [0, -1.5])
    def test_debounce_must_be_positive(self, value):
        with pytest.raises(ValidationError):
            WatchConfig(debounce_seconds=value)


class TestExportConfig:
    @pytest.mark.unit
    def test_defaults(self):
        export = ExportConfig()
        assert export.public_dir == "public/build"
        assert export.base_url == ""
        assert export.runtime_wasm == "php-vrzno-web.wasm"


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------


class TestConfigDefaults:
    @pytest.mark.unit
    def test_layout_defaults(self):
        config = Config()
        assert config.project_marker == "composer.json"
        assert config.source_dir == "src"
        assert config.bootstrap_file == "bootstrap.php"
        assert config.descriptor_files == ["composer.json", "composer.lock"]
        assert config.artifact_name == "php-web.data"
        assert config.debug_dir == "build/debug"
        assert config.virtual_mount_point == "/app"

    @pytest.mark.unit
    def test_production_mode_by_default(self):
        config = Config()
        assert config.dev_mode is False
        assert config.html_maps is False

    @pytest.mark.unit
    def test_nested_from_dict(self, tmp_path: Path):
        config = Config(cache={"temp_root": tmp_path, "atomic_commit": True})
        assert config.cache.temp_root == tmp_path
        assert config.cache.atomic_commit is True


class TestConfigSaveLoad:
    @pytest.mark.unit
    def test_round_trip(self, tmp_path: Path):
        original = Config(dev_mode=True, watch={"debounce_seconds": 0.5})
        path = original.save(tmp_path / "nested" / CONFIG_FILENAME)

        assert path.exists()
        loaded = Config.load(path)
        assert loaded == original

    @pytest.mark.unit
    def test_saved_file_is_json(self, tmp_path: Path):
        path = Config().save(tmp_path / "c.json")
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["artifact_name"] == "php-web.data"
        assert data["tools"]["compiler_args"] == ["--compile-php-files"]

    @pytest.mark.unit
    def test_load_rejects_invalid_values(self, tmp_path: Path):
        path = tmp_path / "bad.json"
        path.write_text('{"watch": {"debounce_seconds": 0}}', encoding="utf-8")
        with pytest.raises(ValidationError):
            Config.load(path)


class TestConfigFromEnv:
    @pytest.mark.unit
    def test_empty_environment_gives_defaults(self):
        assert Config.from_env({}) == Config()

    @pytest.mark.unit
    def test_dev_mode_flags(self):
        config = Config.from_env({"WASMPACK_DEV_MODE": "1", "WASMPACK_HTML_MAPS": "1"})
        assert config.dev_mode is True
        assert config.html_maps is True

    @pytest.mark.unit
    def test_phpx_aliases(self):
        config = Config.from_env({"PHPX_DEV_MODE": "1", "PHPX_HTML_MAPS": "0"})
        assert config.dev_mode is True
        assert config.html_maps is False

    @pytest.mark.unit
    def test_wasmpack_name_wins_over_alias(self):
        config = Config.from_env({"WASMPACK_DEV_MODE": "0", "PHPX_DEV_MODE": "1"})
        assert config.dev_mode is False

    @pytest.mark.unit
    def test_temp_root_debounce_and_base_url(self, tmp_path: Path):
        config = Config.from_env({
            "WASMPACK_TEMP_ROOT": str(tmp_path),
            "WASMPACK_DEBOUNCE": "0.25",
            "BASE_URL": "/my-app",
        })
        assert config.cache.temp_root == tmp_path
        assert config.watch.debounce_seconds == 0.25
        assert config.export.base_url == "/my-app"

    @pytest.mark.unit
    @pytest.mark.parametrize("value", ["-1", "soon"])
    def test_invalid_debounce_rejected(self, value):
        with pytest.raises(ConfigError, match="WASMPACK_DEBOUNCE"):
            Config.from_env({"WASMPACK_DEBOUNCE": value})

    @pytest.mark.unit
    def test_with_env_keeps_other_settings(self):
        base = Config(artifact_name="app.data")
        config = base.with_env({"PHPX_DEV_MODE": "1"})
        assert config.artifact_name == "app.data"
        assert config.dev_mode is True
        assert base.dev_mode is False


class TestConfigDiscover:
    @pytest.mark.unit
    def test_without_project_file(self, tmp_path: Path):
        assert Config.discover(tmp_path, environ={}) == Config()

    @pytest.mark.unit
    def test_reads_project_file(self, tmp_path: Path):
        (tmp_path / CONFIG_FILENAME).write_text(
            json.dumps({"source_dir": "app", "export": {"base_url": "/x"}}),
            encoding="utf-8",
        )
        config = Config.discover(tmp_path, environ={})
        assert config.source_dir == "app"
        assert config.export.base_url == "/x"

    @pytest.mark.unit
    def test_environment_overrides_project_file(self, tmp_path: Path):
        (tmp_path / CONFIG_FILENAME).write_text('{"dev_mode": false}', encoding="utf-8")
        config = Config.discover(tmp_path, environ={"PHPX_DEV_MODE": "1"})
        assert config.dev_mode is True

    @pytest.mark.unit
    @pytest.mark.parametrize("content", ["{not json", '{"watch": {"debounce_seconds": "x"}}'])
    def test_malformed_project_file(self, tmp_path: Path, content: str):
        (tmp_path / CONFIG_FILENAME).write_text(content, encoding="utf-8")
        with pytest.raises(ConfigError, match=CONFIG_FILENAME):
            Config.discover(tmp_path, environ={})

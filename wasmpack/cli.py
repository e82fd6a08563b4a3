"""Command-line interface.

Examples::

    wasmpack build                 # one-shot production build
    wasmpack build --dev --export  # dev build with AI debug maps, then publish
    wasmpack watch                 # rebuild on change until Ctrl+C
    wasmpack cache prune --keep-current
    wasmpack workspaces clean --keep 1
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from datetime import datetime
from pathlib import Path

from wasmpack.builder.workspace import WorkspaceManager
from wasmpack.config import Config
from wasmpack.errors import BuildError, ConfigError, ExportError, ProjectRootNotFound
from wasmpack.exporter import export_bundle
from wasmpack.pipeline import BuildPipeline, print_build_report
from wasmpack.project import BuildRequest, find_project_root
from wasmpack.utils import (
    console,
    format_size_kb,
    print_error,
    print_info,
    print_rule,
    print_success,
    print_summary_table,
)
from wasmpack.vendor.cache import VendorCache
from wasmpack.vendor.hashing import derive_cache_key
from wasmpack.vendor.installer import ComposerInstaller
from wasmpack.watcher import Watcher

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="wasmpack",
        description="Build a PHP/PHPX project into a WebAssembly preload bundle",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__.split("Examples::", 1)[1],
    )
    parser.add_argument(
        "--project", "-C",
        default=None,
        help="Directory to start the project-root search from (default: cwd)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    commands = parser.add_subparsers(dest="command", required=True)

    build = commands.add_parser("build", help="Run one build")
    _add_mode_flags(build)
    build.add_argument(
        "--export",
        action="store_true",
        help="Publish the bundle to the public directory after a successful build",
    )

    watch = commands.add_parser("watch", help="Rebuild on source changes")
    _add_mode_flags(watch)
    watch.add_argument(
        "--no-export",
        action="store_true",
        help="Do not publish the bundle after each successful build",
    )

    commands.add_parser("export", help="Publish the last built bundle")

    cache = commands.add_parser("cache", help="Inspect or prune the vendor cache")
    cache_commands = cache.add_subparsers(dest="cache_command", required=True)
    cache_list = cache_commands.add_parser("list", help="List cache entries")
    cache_list.add_argument("--all-projects", action="store_true")
    prune = cache_commands.add_parser("prune", help="Delete cache entries")
    prune.add_argument("--all-projects", action="store_true")
    prune.add_argument(
        "--keep-current",
        action="store_true",
        help="Keep the entry matching the current composer.json/composer.lock",
    )
    prune.add_argument(
        "--older-than-days",
        type=float,
        default=None,
        help="Only delete entries not modified for this many days",
    )

    workspaces = commands.add_parser("workspaces", help="Inspect or clean retained workspaces")
    ws_commands = workspaces.add_subparsers(dest="workspaces_command", required=True)
    ws_commands.add_parser("list", help="List retained workspaces")
    clean = ws_commands.add_parser("clean", help="Delete retained workspaces")
    clean.add_argument("--keep", type=int, default=0, help="Keep the N most recent (default: 0)")

    return parser


def _add_mode_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--dev",
        action="store_true",
        default=None,
        help="Development mode: emit AI debug side-files and build/debug/index.json",
    )
    parser.add_argument(
        "--html-maps",
        action="store_true",
        default=None,
        help="Emit browser-facing source maps",
    )


def load_config(project_root: Path, args: argparse.Namespace) -> Config:
    """Project file, then environment, then command-line flags."""
    config = Config.discover(project_root)
    updates = {}
    if getattr(args, "dev", None):
        updates["dev_mode"] = True
    if getattr(args, "html_maps", None):
        updates["html_maps"] = True
    return config.model_copy(update=updates) if updates else config


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def _build_once(config: Config, project_root: Path, export: bool) -> bool:
    pipeline = BuildPipeline.from_config(config, project_root)
    result = await pipeline.run(BuildRequest.from_config(config, project_root))
    print_build_report(result)
    if not result.success:
        return False
    if export:
        try:
            export_bundle(config, project_root)
        except ExportError as exc:
            print_error(str(exc))
            return False
    return True


def cmd_build(config: Config, project_root: Path, args: argparse.Namespace) -> int:
    if config.dev_mode:
        print_info("Development mode: AI debug maps enabled")
    ok = asyncio.run(_build_once(config, project_root, export=args.export))
    return 0 if ok else 1


def cmd_export(config: Config, project_root: Path, args: argparse.Namespace) -> int:
    try:
        export_bundle(config, project_root)
    except ExportError as exc:
        print_error(str(exc))
        return 1
    return 0


async def _watch(config: Config, project_root: Path, export: bool) -> None:
    async def build() -> bool:
        print_rule("Rebuilding")
        ok = await _build_once(config, project_root, export=export)
        if ok:
            print_success(f"Build completed successfully at {datetime.now():%H:%M:%S}")
        return ok

    watcher = Watcher(
        project_root,
        config.watch.paths,
        build,
        debounce_seconds=config.watch.debounce_seconds,
        exclude_patterns=config.watch.exclude_patterns,
    )

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    print_rule("Build Watcher Started")
    console.print("Watching for changes in:")
    for path in config.watch.paths:
        console.print(f"  - {path}")
    console.print("Press Ctrl+C to stop")
    console.print()

    try:
        await watcher.run(stop)
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)
    console.print("Stopped watching.")


def cmd_watch(config: Config, project_root: Path, args: argparse.Namespace) -> int:
    export = config.watch.export_after_build and not args.no_export
    asyncio.run(_watch(config, project_root, export))
    return 0


def _vendor_cache(config: Config) -> VendorCache:
    return VendorCache(config.cache.temp_root, ComposerInstaller(config.tools.installer))


def cmd_cache(config: Config, project_root: Path, args: argparse.Namespace) -> int:
    cache = _vendor_cache(config)
    project = None if args.all_projects else project_root.name

    if args.cache_command == "list":
        entries = cache.list_entries(project)
        if not entries:
            console.print(f"No vendor cache entries under {cache.cache_root}")
            return 0
        rows = {
            f"{e.project_name} {e.key}": f"{format_size_kb(e.size_bytes)}  "
            f"{datetime.fromtimestamp(e.modified_at):%Y-%m-%d %H:%M}"
            for e in entries
        }
        print_summary_table(rows, title="Vendor cache")
        return 0

    keep: list[str] = []
    if args.keep_current:
        try:
            keep.append(
                derive_cache_key([project_root / name for name in config.descriptor_files])
            )
        except BuildError as exc:
            print_error(str(exc))
            return 1
    older_than = None
    if args.older_than_days is not None:
        older_than = args.older_than_days * SECONDS_PER_DAY

    removed = cache.prune(project, keep_keys=keep, older_than=older_than)
    for path in removed:
        console.print(f"  [red]-[/red] {path}")
    print_success(f"Pruned {len(removed)} vendor cache entr{'y' if len(removed) == 1 else 'ies'}")
    return 0


def cmd_workspaces(config: Config, project_root: Path, args: argparse.Namespace) -> int:
    manager = WorkspaceManager(config.cache.temp_root)
    project = project_root.name

    if args.workspaces_command == "list":
        found = manager.list_workspaces(project)
        if not found:
            console.print(f"No retained workspaces for {project}")
            return 0
        print_summary_table(
            {w.token: f"{datetime.fromtimestamp(w.modified_at):%Y-%m-%d %H:%M}" for w in found},
            title=f"Workspaces ({project})",
        )
        return 0

    try:
        removed = manager.clean(project, keep=args.keep)
    except BuildError as exc:
        print_error(str(exc))
        return 1
    for path in removed:
        console.print(f"  [red]-[/red] {path}")
    print_success(f"Removed {len(removed)} workspace(s)")
    return 0


COMMANDS = {
    "build": cmd_build,
    "watch": cmd_watch,
    "export": cmd_export,
    "cache": cmd_cache,
    "workspaces": cmd_workspaces,
}


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for ``wasmpack`` and ``python -m wasmpack``."""
    args = build_parser().parse_args(argv)

    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

    try:
        project_root = find_project_root(args.project)
    except ProjectRootNotFound as exc:
        print_error(f"Error: {exc}")
        sys.exit(1)

    try:
        config = load_config(project_root, args)
    except ConfigError as exc:
        print_error(f"Error: {exc}")
        sys.exit(1)
    logger.debug("Project root %s, config %s", project_root, config.model_dump())

    code = COMMANDS[args.command](config, project_root, args)
    if code:
        sys.exit(code)


if __name__ == "__main__":
    main()

"""Debounced rebuild-on-change watcher.

The scheduling decision is a pure function over an explicit ``WatchState``
and a timestamp from an injected clock, so it can be exercised without real
timers. ``Watcher`` wires that decision to ``watchdog`` filesystem events and
an asyncio loop:

* an initial build always runs at start;
* a qualifying event starts a build immediately, unless a build is running or
  the last build started less than ``debounce_seconds`` ago, in which case the
  event only sets ``pending``;
* on shutdown, after any running build finishes, one final build runs if
  ``pending`` is still set.

``pending`` is a flag, not a queue: any burst of events collapses into at most
one remembered rebuild. Builds never overlap.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, replace
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from wasmpack.utils import console

logger = logging.getLogger(__name__)

RELEVANT_EVENTS = frozenset({"created", "modified", "deleted", "moved"})

BuildCallback = Callable[[], Awaitable[bool]]


# ---------------------------------------------------------------------------
# Debounce decision
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class WatchState:
    last_build_started: float | None = None
    pending: bool = False
    building: bool = False


def on_change(state: WatchState, now: float, window: float) -> tuple[WatchState, bool]:
    """Decide what a qualifying filesystem event at *now* does.

    Returns the new state and ``True`` if a build should start right away.
    """
    if state.building:
        return replace(state, pending=True), False
    if state.last_build_started is not None and now - state.last_build_started < window:
        return replace(state, pending=True), False
    return replace(state, last_build_started=now, pending=False, building=True), True


def on_build_started(state: WatchState, now: float) -> WatchState:
    """Record an unconditional build (initial or shutdown flush)."""
    return replace(state, last_build_started=now, pending=False, building=True)


def on_build_finished(state: WatchState) -> WatchState:
    return replace(state, building=False)


# ---------------------------------------------------------------------------
# Path filtering
# ---------------------------------------------------------------------------


def compile_patterns(patterns: Iterable[str]) -> list[re.Pattern[str]]:
    return [re.compile(p) for p in patterns]


def is_excluded(relative_path: str, patterns: Iterable[re.Pattern[str]]) -> bool:
    """True if any exclude regex matches the (posix, project-relative) path."""
    return any(p.search(relative_path) for p in patterns)


class _ChangeHandler(FileSystemEventHandler):
    """Forwards relevant watchdog events (from the observer thread) to the watcher."""

    def __init__(self, watcher: "Watcher"):
        super().__init__()
        self._watcher = watcher

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.event_type not in RELEVANT_EVENTS:
            return
        if event.is_directory and event.event_type == "modified":
            return
        for raw in (event.src_path, getattr(event, "dest_path", "")):
            path = raw.decode() if isinstance(raw, bytes) else raw
            if path and self._watcher.accepts(path):
                self._watcher.notify(path)
                return


# ---------------------------------------------------------------------------
# Watcher
# ---------------------------------------------------------------------------


class Watcher:
    """Watches project paths and triggers debounced builds.

    Args:
        project_root: Paths are resolved against, and excludes matched
            relative to, this directory.
        paths: Watched directories (recursive) and files.
        build: Coroutine function running one build; returns success.
            Exceptions it raises are logged and do not stop the watcher.
        debounce_seconds: Minimum time between the starts of two
            event-triggered builds.
        exclude_patterns: Regexes matched against project-relative paths.
        clock: Monotonic time source.
        observer_factory: Creates the watchdog observer.
    """

    def __init__(
        self,
        project_root: Path,
        paths: Iterable[str | Path],
        build: BuildCallback,
        *,
        debounce_seconds: float = 2.0,
        exclude_patterns: Iterable[str] = (),
        clock: Callable[[], float] = time.monotonic,
        observer_factory: Callable[[], Observer] = Observer,
    ):
        self.project_root = Path(project_root).resolve()
        self.paths = [self._absolute(p) for p in paths]
        self.build = build
        self.debounce_seconds = debounce_seconds
        self.exclude = compile_patterns(exclude_patterns)
        self.clock = clock
        self.observer_factory = observer_factory

        self.state = WatchState()
        self.builds_started = 0
        self._build_task: asyncio.Task[None] | None = None
        self._queue: asyncio.Queue[str] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    def _absolute(self, path: str | Path) -> Path:
        p = Path(path)
        return p if p.is_absolute() else self.project_root / p

    def _relative(self, path: Path) -> str:
        try:
            return path.relative_to(self.project_root).as_posix()
        except ValueError:
            return path.as_posix()

    # ------------------------------------------------------------------
    # Event intake
    # ------------------------------------------------------------------

    def accepts(self, raw_path: str | Path) -> bool:
        """True if *raw_path* is under a watched path and not excluded."""
        path = Path(raw_path)
        if not path.is_absolute():
            path = self.project_root / path
        watched = any(path == root or root in path.parents for root in self.paths)
        return watched and not is_excluded(self._relative(path), self.exclude)

    def notify(self, path: str) -> None:
        """Hand an event to the asyncio loop. Safe to call from any thread."""
        if self._loop is None or self._queue is None:
            return
        self._loop.call_soon_threadsafe(self._queue.put_nowait, path)

    async def handle_change(self, path: str) -> bool:
        """Apply the debounce decision to one event. Returns True if a build started."""
        console.print(f"[blue]>[/blue] Changed: {Path(path).name}")
        self.state, start = on_change(self.state, self.clock(), self.debounce_seconds)
        if start:
            self._launch_build()
        else:
            logger.debug("Rebuild deferred (pending) for %s", path)
        return start

    # ------------------------------------------------------------------
    # Builds
    # ------------------------------------------------------------------

    def _launch_build(self) -> None:
        self.builds_started += 1
        self._build_task = asyncio.create_task(self._run_build())

    async def _run_build(self) -> None:
        try:
            ok = await self.build()
            if not ok:
                logger.info("Build failed; still watching")
        except Exception:
            logger.exception("Build raised; still watching")
        finally:
            self.state = on_build_finished(self.state)

    async def wait_idle(self) -> None:
        """Wait for the running build, if any, to finish."""
        if self._build_task is not None:
            await self._build_task

    async def start(self) -> None:
        """Run the unconditional initial build in the background."""
        self.state = on_build_started(self.state, self.clock())
        self._launch_build()

    async def shutdown(self) -> None:
        """Finish the running build, then flush a pending rebuild once."""
        await self.wait_idle()
        if self.state.pending:
            console.print("[yellow]Running pending rebuild before exit...[/yellow]")
            self.state = on_build_started(self.state, self.clock())
            self._launch_build()
            await self.wait_idle()

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    def _schedule(self, observer: Observer, handler: FileSystemEventHandler) -> None:
        scheduled: set[tuple[Path, bool]] = set()
        for path in self.paths:
            if path.is_dir():
                target, recursive = path, True
            elif path.parent.is_dir():
                target, recursive = path.parent, False
            else:
                console.print(f"[yellow]Not watching missing path: {path}[/yellow]")
                continue
            if (target, recursive) in scheduled:
                continue
            observer.schedule(handler, str(target), recursive=recursive)
            scheduled.add((target, recursive))

    async def run(self, stop: asyncio.Event) -> None:
        """Watch until *stop* is set, then shut down cleanly."""
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()

        observer = self.observer_factory()
        self._schedule(observer, _ChangeHandler(self))
        observer.start()
        try:
            await self.start()
            while not stop.is_set():
                getter = asyncio.ensure_future(self._queue.get())
                stopper = asyncio.ensure_future(stop.wait())
                done, pending = await asyncio.wait(
                    {getter, stopper}, return_when=asyncio.FIRST_COMPLETED
                )
                for task in pending:
                    task.cancel()
                if getter in done:
                    await self.handle_change(getter.result())
        finally:
            observer.stop()
            observer.join()
            self._loop = None
        await self._drain()
        await self.shutdown()

    async def _drain(self) -> None:
        """Run events that arrived before the stop through the debounce."""
        if self._queue is None:
            return
        # Let call_soon_threadsafe deliveries from the observer thread land.
        await asyncio.sleep(0)
        while True:
            try:
                path = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            await self.handle_change(path)

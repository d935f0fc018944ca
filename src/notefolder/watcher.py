"""DirectoryWatcher: debounced change notification for the notes directory.

Raw filesystem events from :mod:`watchdog` arm a trailing-edge debounce
timer; each new event cancels and re-arms it.  When the timer finally fires
the watcher delivers one coalesced ``on_change()`` call.

States::

    IDLE --start()--> WATCHING --event--> PENDING_RELOAD --timer--> WATCHING
      ^                                                               |
      +------------------------- stop() (from any state) ------------+

Once :meth:`DirectoryWatcher.stop` returns, no further callback is
delivered, including one whose timer was already armed.
"""

from __future__ import annotations

import enum
import logging
import os
import threading
from collections.abc import Callable, Iterable
from pathlib import Path

from watchdog.events import (
    EVENT_TYPE_CLOSED,
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 0.5

# opened / closed_no_write come from our own rescans and must not re-trigger one
_CHANGE_EVENTS = frozenset({
    EVENT_TYPE_CREATED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MOVED,
    EVENT_TYPE_CLOSED,
})


class WatcherState(enum.Enum):
    IDLE = "idle"
    WATCHING = "watching"
    PENDING_RELOAD = "pending_reload"


class _ChangeHandler(FileSystemEventHandler):
    def __init__(self, watcher: "DirectoryWatcher") -> None:
        super().__init__()
        self._watcher = watcher

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type not in _CHANGE_EVENTS:
            return
        paths = [event.src_path, getattr(event, "dest_path", "")]
        if any(self._watcher.is_relevant(p) for p in paths if p):
            logger.debug("%s: %s", event.event_type, event.src_path)
            self._watcher.notify()


class DirectoryWatcher:
    """Watches one directory (non-recursively) and debounces its changes."""

    def __init__(
        self,
        directory: Path,
        on_change: Callable[[], None],
        *,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        extensions: Iterable[str] | None = None,
        index_filename: str | None = None,
    ) -> None:
        self.directory = Path(directory)
        self.debounce_seconds = debounce_seconds
        self._on_change = on_change
        self._extensions = None if extensions is None else {e.lstrip(".").lower() for e in extensions}
        self._index_filename = index_filename

        self._lock = threading.Lock()
        # held for the whole of a delivery so stop() can wait it out
        self._delivery = threading.RLock()
        self._state = WatcherState.IDLE
        self._observer: Observer | None = None
        self._timer: threading.Timer | None = None
        self._generation = 0

    @property
    def state(self) -> WatcherState:
        return self._state

    def is_relevant(self, path: str | bytes) -> bool:
        """True when a change to *path* should trigger a reload."""
        if isinstance(path, bytes):
            path = os.fsdecode(path)
        name = os.path.basename(path)
        if self._index_filename and name == self._index_filename:
            return True
        if name.startswith("."):
            return False
        if self._extensions is None:
            return True
        return os.path.splitext(name)[1].lstrip(".").lower() in self._extensions

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Begin watching.  A no-op when already started."""
        with self._lock:
            if self._state is not WatcherState.IDLE:
                return
            observer = Observer()
            observer.schedule(_ChangeHandler(self), str(self.directory), recursive=False)
            observer.daemon = True
            observer.start()
            self._observer = observer
            self._state = WatcherState.WATCHING
        logger.info("watching %s (debounce %.2fs)", self.directory, self.debounce_seconds)

    def stop(self) -> None:
        """Stop watching and release the OS watch handle.

        Valid from any state.  A pending debounce timer is cancelled and an
        in-progress delivery is waited for, so nothing is delivered after
        this returns.
        """
        with self._lock:
            was_idle = self._state is WatcherState.IDLE
            self._state = WatcherState.IDLE
            self._generation += 1
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            observer, self._observer = self._observer, None

        if observer is not None:
            observer.stop()
            if threading.current_thread() is not observer:
                observer.join()
        with self._delivery:
            pass
        if not was_idle:
            logger.info("stopped watching %s", self.directory)

    # ------------------------------------------------------------------
    # Debounce
    # ------------------------------------------------------------------

    def notify(self) -> None:
        """Record a raw change; (re)arms the debounce timer."""
        with self._lock:
            if self._state is WatcherState.IDLE:
                return
            if self._timer is not None:
                self._timer.cancel()
            self._generation += 1
            timer = threading.Timer(self.debounce_seconds, self._fire, args=(self._generation,))
            timer.daemon = True
            self._timer = timer
            self._state = WatcherState.PENDING_RELOAD
            timer.start()

    def _fire(self, generation: int) -> None:
        with self._delivery:
            with self._lock:
                if self._state is not WatcherState.PENDING_RELOAD or generation != self._generation:
                    return
                self._state = WatcherState.WATCHING
                self._timer = None
            logger.debug("delivering coalesced change for %s", self.directory)
            try:
                self._on_change()
            except Exception:  # noqa: BLE001
                logger.exception("change callback failed for %s", self.directory)

"""Typed change events published by :class:`~notefolder.store.NoteStore`.

Listeners are plain callables taking one event::

    def on_event(event: StoreEvent) -> None:
        match event:
            case NoteUpdated(note=note):
                refresh_row(note)
            case DirectoryChanged(notes=notes):
                redraw(notes)

    unsubscribe = store.events.subscribe(on_event)

Listeners are expected to be idempotent re-renderers.  A listener that
raises is logged and skipped; it never breaks the store operation that
published the event.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Union

from notefolder.note import Note

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Event variants
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DirectoryChanged:
    """Bulk change: the ordered note list was replaced or re-sorted."""

    notes: tuple[Note, ...]


@dataclass(frozen=True)
class NoteCreated:
    note: Note


@dataclass(frozen=True)
class NoteUpdated:
    note: Note


@dataclass(frozen=True)
class NoteDeleted:
    note: Note


StoreEvent = Union[DirectoryChanged, NoteCreated, NoteUpdated, NoteDeleted]
Listener = Callable[[StoreEvent], None]


# ---------------------------------------------------------------------------
# Bus
# ---------------------------------------------------------------------------


class EventBus:
    """Synchronous observer registry."""

    def __init__(self) -> None:
        self._listeners: list[Listener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener*; returns a callable that unregisters it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def publish(self, *events: StoreEvent) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for event in events:
            for listener in listeners:
                try:
                    listener(event)
                except Exception:  # noqa: BLE001
                    logger.exception("listener %r failed on %s", listener, type(event).__name__)

    def clear(self) -> None:
        with self._lock:
            self._listeners.clear()

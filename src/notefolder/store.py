"""NoteStore: the in-memory note list kept in step with a notes directory.

The directory is the source of truth.  Edits arrive from two sides:

- the application, through the mutating methods below, which go through
  :class:`~notefolder.codec.NoteCodec` and then update the list;
- other processes touching the same files, which the
  :class:`~notefolder.watcher.DirectoryWatcher` reports as one coalesced
  signal, answered by a full rescan (*reconciliation*).

Reconciliation never replaces the note that is open for editing: its
in-memory record (and any unsaved text in it) wins over the rescan.

Threading: one re-entrant lock serializes every change to ``notes``.
Rescans triggered by the watcher run on a single worker thread; a signal
arriving while one is queued or running is dropped, since the running
rescan reads the latest disk state anyway.  Events are published after the
lock is released.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from notefolder.codec import NoteCodec
from notefolder.config import StoreConfig
from notefolder.errors import NoteError
from notefolder.events import (
    DirectoryChanged,
    EventBus,
    NoteCreated,
    NoteDeleted,
    NoteUpdated,
    StoreEvent,
)
from notefolder.note import Note, normalize_tags
from notefolder.sidecar import open_sidecar
from notefolder.watcher import DirectoryWatcher

logger = logging.getLogger(__name__)

WELCOME_TITLE = "Welcome to notefolder"
_WELCOME_TEXT = """\
Every note is a plain file in the folder you chose.

Creating notes: type a title and press Enter; a new file is created if no note matches.
Tags and pins are stored next to the file, never inside it.
Pinned notes stay at the top of the list.
Changes made by other programs are picked up automatically.
"""


def sort_notes(notes: list[Note]) -> None:
    """Sort in place: pinned first, then newest ``modified_at`` first.

    The sort is stable, so notes equal on both keys keep their order.
    """
    notes.sort(key=lambda n: (not n.pinned, -n.modified_at.timestamp()))


class NoteStore:
    """Owns the note list, the active directory and its watcher."""

    def __init__(self, config: StoreConfig | None = None) -> None:
        self.config = config or StoreConfig()
        self.events = EventBus()
        self._notes: list[Note] = []
        self._directory: Path | None = None
        self._codec: NoteCodec | None = None
        self._watcher: DirectoryWatcher | None = None
        self._editing_id: str | None = None
        self._reload_in_flight = False
        self._lock = threading.RLock()
        self._closed = threading.Event()
        self._reloader = ThreadPoolExecutor(max_workers=1, thread_name_prefix="notefolder-reload")

    def __enter__(self) -> "NoteStore":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def notes(self) -> list[Note]:
        """Snapshot of the ordered note list."""
        with self._lock:
            return list(self._notes)

    @property
    def directory(self) -> Path | None:
        return self._directory

    @property
    def editing_id(self) -> str | None:
        return self._editing_id

    @property
    def reload_in_flight(self) -> bool:
        return self._reload_in_flight

    @property
    def codec(self) -> NoteCodec:
        if self._codec is None:
            raise RuntimeError("No notes directory set; call set_directory() first.")
        return self._codec

    def _require_directory(self) -> Path:
        if self._directory is None:
            raise RuntimeError("No notes directory set; call set_directory() first.")
        return self._directory

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def set_directory(self, directory: Path) -> None:
        """Bind the store to *directory*: load it and start watching.

        Raises :class:`~notefolder.errors.DirectoryNotAccessible` when the
        directory cannot be listed; the store is then left unbound, with no
        directory and an empty note list.
        """
        if self._closed.is_set():
            raise RuntimeError("NoteStore is closed")
        directory = Path(directory)

        with self._lock:
            old_watcher, self._watcher = self._watcher, None
            self._directory = None
            self._codec = None
            self._notes = []
            self._editing_id = None
        if old_watcher is not None:
            old_watcher.stop()

        codec = NoteCodec(open_sidecar(directory, self.config), self.config)
        loaded = codec.load_all(directory)
        sort_notes(loaded)

        with self._lock:
            self._directory = directory
            self._codec = codec
            self._notes = loaded
            snapshot = tuple(self._notes)

        if self.config.watch:
            watcher = DirectoryWatcher(
                directory,
                lambda: self._on_directory_changed(directory),
                debounce_seconds=self.config.debounce_seconds,
                extensions=self.config.extensions,
                index_filename=self.config.index_filename,
            )
            watcher.start()
            with self._lock:
                self._watcher = watcher
        logger.info("loaded %d notes from %s", len(snapshot), directory)
        self.events.publish(DirectoryChanged(snapshot))

    def close(self) -> None:
        """Stop watching and release the reload worker.  Idempotent."""
        if self._closed.is_set():
            return
        self._closed.set()
        with self._lock:
            watcher, self._watcher = self._watcher, None
        if watcher is not None:
            watcher.stop()
        self._reloader.shutdown(wait=True, cancel_futures=True)
        self.events.clear()

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def _on_directory_changed(self, directory: Path) -> None:
        with self._lock:
            if self._reload_in_flight or self._closed.is_set():
                logger.debug("reload already in flight; dropping change signal")
                return
            self._reload_in_flight = True
        try:
            self._reloader.submit(self._reconcile, directory)
        except RuntimeError:
            # executor shut down by close()
            with self._lock:
                self._reload_in_flight = False

    def _reconcile(self, directory: Path) -> None:
        try:
            if self._closed.wait(self.config.settle_seconds):
                return
            if self._directory != directory:
                return
            self.reload()
        except NoteError as exc:
            logger.warning("reload of %s failed: %s", directory, exc)
        except Exception:  # noqa: BLE001
            logger.exception("unexpected error reloading %s", directory)
        finally:
            with self._lock:
                self._reload_in_flight = False

    def reload(self) -> None:
        """Rescan the directory and merge it into the note list.

        Freshly read notes replace the in-memory ones wholesale, except the
        note being edited, which is kept as is.  A note keeps its ``id``
        across rescans as long as its file stays at the same location.
        """
        with self._lock:
            directory = self._require_directory()
            loaded = self.codec.load_all(directory)
            current = {n.location: n for n in self._notes}
            merged: list[Note] = []
            for fresh in loaded:
                existing = current.get(fresh.location)
                if existing is not None:
                    fresh.id = existing.id
                if existing is not None and existing.id == self._editing_id:
                    merged.append(existing)
                else:
                    merged.append(fresh)
            sort_notes(merged)
            self._notes = merged
            snapshot = tuple(merged)
        logger.debug("reconciled %d notes from %s", len(snapshot), directory)
        self.events.publish(DirectoryChanged(snapshot))

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def _publish(self, *events: StoreEvent) -> None:
        self.events.publish(*events)

    def _bulk(self) -> DirectoryChanged:
        return DirectoryChanged(tuple(self._notes))

    def create_note(self, title: str, content: str = "") -> Note:
        """Create a note file and put it at the front of the list."""
        with self._lock:
            note = self.codec.create_note(self._require_directory(), title, content)
            self._notes.insert(0, note)
            sort_notes(self._notes)
            bulk = self._bulk()
        self._publish(NoteCreated(note), bulk)
        return note

    def update_content(self, note: Note, content: str) -> None:
        """Replace *note*'s body and write it out.

        A failed write is logged, not raised; the in-memory content keeps
        the new text either way.
        """
        with self._lock:
            note.content = content
            try:
                self.codec.write_note(note)
            except NoteError:
                logger.exception("could not save %s", note.location)
            sort_notes(self._notes)
            bulk = self._bulk()
        self._publish(NoteUpdated(note), bulk)

    def update_tags(self, note: Note, tags: Iterable[str]) -> None:
        """Set *note*'s tags.  Persistence failures are logged, not raised."""
        with self._lock:
            note.tags = normalize_tags(tags)
            try:
                self.codec.write_tags(note.location, note.tags)
                note.modified_at = self.codec.stamp(note.location)
            except (NoteError, OSError):
                logger.exception("could not save tags for %s", note.location)
            sort_notes(self._notes)
            bulk = self._bulk()
        self._publish(NoteUpdated(note), bulk)

    def toggle_pinned(self, note: Note) -> None:
        """Flip *note*'s pinned flag.  Persistence failures are logged, not raised."""
        with self._lock:
            note.pinned = not note.pinned
            try:
                self.codec.write_pinned(note.location, note.pinned)
                note.modified_at = self.codec.stamp(note.location)
            except (NoteError, OSError):
                logger.exception("could not save pin state for %s", note.location)
            sort_notes(self._notes)
            bulk = self._bulk()
        self._publish(NoteUpdated(note), bulk)

    def delete_note(self, note: Note) -> None:
        """Move *note*'s file to the trash and drop it from the list."""
        with self._lock:
            self.codec.delete_note(note.location)
            self._notes = [n for n in self._notes if n.id != note.id]
            if self._editing_id == note.id:
                self._editing_id = None
            bulk = self._bulk()
        self._publish(NoteDeleted(note), bulk)

    def rename_note(self, note: Note, new_title: str) -> None:
        """Rename *note*'s file; the record is updated in place."""
        with self._lock:
            new_location = self.codec.rename_note(note, new_title)
            note.location = new_location
            note.title = new_location.stem
            try:
                note.modified_at = self.codec.stamp(new_location)
                note.content = self.codec.read_note(new_location).content
            except (NoteError, OSError):
                logger.warning("could not re-read renamed note %s", new_location, exc_info=True)
            sort_notes(self._notes)
            bulk = self._bulk()
        self._publish(NoteUpdated(note), bulk)

    def set_editing_note(self, note: Note | None) -> None:
        """Mark *note* as open in an editor; pass ``None`` when it closes."""
        with self._lock:
            self._editing_id = None if note is None else note.id

    def create_welcome_note(self) -> Note | None:
        """Create the welcome note unless a file of that name already exists."""
        with self._lock:
            directory = self._require_directory()
            target = directory / f"{WELCOME_TITLE}.{self.config.primary_extension}"
            if target.exists():
                return None
        return self.create_note(WELCOME_TITLE, _WELCOME_TEXT)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def note_with_id(self, note_id: str) -> Note | None:
        with self._lock:
            return next((n for n in self._notes if n.id == note_id), None)

    def note_at(self, path: Path) -> Note | None:
        path = Path(path)
        with self._lock:
            return next((n for n in self._notes if n.location == path), None)

    def notes_matching_title_prefix(self, prefix: str) -> list[Note]:
        """Case-insensitive title prefix filter, in list order."""
        p = prefix.lower()
        with self._lock:
            return [n for n in self._notes if n.title.lower().startswith(p)]

    def notes_containing_title(self, substring: str) -> list[Note]:
        """Case-insensitive title substring filter, in list order."""
        s = substring.lower()
        with self._lock:
            return [n for n in self._notes if s in n.title.lower()]

    def all_tags(self) -> set[str]:
        with self._lock:
            return set().union(*(n.tags for n in self._notes))

    def all_titles(self) -> list[str]:
        with self._lock:
            return [n.title for n in self._notes]

"""notefolder: a directory of note files kept in sync with an in-memory list."""

from notefolder.codec import NoteCodec, sanitize_filename
from notefolder.config import StoreConfig, load_config
from notefolder.errors import (
    DeleteFailure,
    DirectoryNotAccessible,
    NoteError,
    ReadFailure,
    RenameFailure,
    SidecarFailure,
    TooManyDuplicates,
    WriteFailure,
)
from notefolder.events import DirectoryChanged, NoteCreated, NoteDeleted, NoteUpdated
from notefolder.note import Note, normalize_tags
from notefolder.sidecar import IndexFileSidecar, MetadataSidecar, XattrSidecar, open_sidecar
from notefolder.store import NoteStore, sort_notes
from notefolder.watcher import DirectoryWatcher, WatcherState

__all__ = [
    "Note",
    "normalize_tags",
    "NoteCodec",
    "sanitize_filename",
    "NoteStore",
    "sort_notes",
    "DirectoryWatcher",
    "WatcherState",
    "MetadataSidecar",
    "XattrSidecar",
    "IndexFileSidecar",
    "open_sidecar",
    "StoreConfig",
    "load_config",
    "DirectoryChanged",
    "NoteCreated",
    "NoteUpdated",
    "NoteDeleted",
    "NoteError",
    "DirectoryNotAccessible",
    "ReadFailure",
    "WriteFailure",
    "DeleteFailure",
    "RenameFailure",
    "SidecarFailure",
    "TooManyDuplicates",
]

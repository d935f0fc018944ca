"""NoteCodec: converts between note files on disk and :class:`Note` records.

The codec is stateless apart from the sidecar it writes metadata through.
It never caches notes; every call goes to the filesystem.

Content writes are atomic (write a temporary file, then ``os.replace``).
Replacing the file creates a new inode, which silently drops extended
attributes, so every content write re-applies tags and the pinned flag.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
import time
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path

from send2trash import send2trash

from notefolder.config import StoreConfig
from notefolder.errors import (
    DeleteFailure,
    DirectoryNotAccessible,
    ReadFailure,
    RenameFailure,
    SidecarFailure,
    TooManyDuplicates,
    WriteFailure,
)
from notefolder.note import Note, normalize_tags
from notefolder.rtf import is_rtf, plain_to_rtf
from notefolder.sidecar import PINNED_KEY, TAGS_KEY, MetadataSidecar

logger = logging.getLogger(__name__)

RICH_EXTENSION = "rtf"

_UNSAFE_CHARS = frozenset('/\\:*?"<>|')
_DEFAULT_STEM = "untitled"
# room for ".ext" plus "-<timestamp>" inside the file name byte budget
_SUFFIX_RESERVE = 32


# ---------------------------------------------------------------------------
# File names
# ---------------------------------------------------------------------------


def sanitize_filename(title: str, max_bytes: int = 255) -> str:
    """Turn *title* into a filesystem-safe file stem.

    Path-unsafe and control characters become ``-``; leading dots are
    dropped so a note never turns into a hidden file; the result is cut to
    *max_bytes* of UTF-8 without splitting a character.
    """
    cleaned = "".join("-" if ch in _UNSAFE_CHARS or ord(ch) < 0x20 else ch for ch in title)
    cleaned = cleaned.strip().lstrip(".").strip()
    encoded = cleaned.encode("utf-8")[:max_bytes]
    cleaned = encoded.decode("utf-8", errors="ignore").rstrip()
    return cleaned or _DEFAULT_STEM


def filename_timestamp() -> str:
    """Disambiguation suffix for colliding file names."""
    return datetime.now().strftime("%Y%m%d-%H%M%S-%f")


# ---------------------------------------------------------------------------
# Codec
# ---------------------------------------------------------------------------


class NoteCodec:
    """Reads and writes note files in one notes directory."""

    def __init__(self, sidecar: MetadataSidecar, config: StoreConfig | None = None) -> None:
        self.sidecar = sidecar
        self.config = config or StoreConfig()

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    def read_tags(self, path: Path) -> set[str]:
        raw = self.sidecar.get(path, TAGS_KEY)
        if not raw:
            return set()
        return normalize_tags(raw.decode("utf-8", errors="replace").split(","))

    def read_pinned(self, path: Path) -> bool:
        return self.sidecar.get(path, PINNED_KEY) == b"1"

    def write_tags(self, path: Path, tags: Iterable[str]) -> None:
        value = ",".join(sorted(normalize_tags(tags)))
        self.sidecar.set(path, TAGS_KEY, value.encode("utf-8"))

    def write_pinned(self, path: Path, pinned: bool) -> None:
        self.sidecar.set(path, PINNED_KEY, b"1" if pinned else b"0")

    @staticmethod
    def stamp(path: Path) -> datetime:
        """Set *path*'s modification time to now and return it."""
        now = time.time()
        os.utime(path, (now, now))
        return datetime.fromtimestamp(now)

    # ------------------------------------------------------------------
    # Read / write
    # ------------------------------------------------------------------

    def read_note(self, path: Path) -> Note:
        path = Path(path)
        try:
            content = path.read_text(encoding="utf-8")
            st = path.stat()
        except (OSError, UnicodeDecodeError) as exc:
            raise ReadFailure(path, exc) from exc
        created = getattr(st, "st_birthtime", None) or st.st_ctime
        return Note(
            title=path.stem,
            content=content,
            location=path,
            created_at=datetime.fromtimestamp(created),
            modified_at=datetime.fromtimestamp(st.st_mtime),
            tags=self.read_tags(path),
            pinned=self.read_pinned(path),
        )

    def write_note(self, note: Note) -> None:
        """Atomically rewrite *note*'s file and re-apply its metadata."""
        path = note.location
        try:
            self._atomic_write(path, self._encode(note.content, path))
            note.modified_at = self.stamp(path)
            self._reapply_metadata(path, note.tags, note.pinned)
        except (OSError, SidecarFailure) as exc:
            raise WriteFailure(path, exc) from exc

    def _reapply_metadata(self, path: Path, tags: Iterable[str], pinned: bool) -> None:
        self.write_tags(path, tags)
        if pinned or self.read_pinned(path):
            self.write_pinned(path, pinned)

    @staticmethod
    def _encode(content: str, path: Path) -> str:
        if path.suffix.lstrip(".").lower() == RICH_EXTENSION and not is_rtf(content):
            return plain_to_rtf(content)
        return content

    @staticmethod
    def _atomic_write(path: Path, text: str) -> None:
        fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(text)
                fh.flush()
                os.fsync(fh.fileno())
            if path.exists():
                shutil.copymode(path, tmp)
            else:
                os.chmod(tmp, 0o644)
            os.replace(tmp, path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    # ------------------------------------------------------------------
    # Create / rename / delete
    # ------------------------------------------------------------------

    def _candidates(self, directory: Path, stem: str, suffix: str):
        yield directory / f"{stem}{suffix}"
        for _ in range(self.config.max_duplicates):
            yield directory / f"{stem}-{filename_timestamp()}{suffix}"

    def _stem(self, title: str) -> str:
        return sanitize_filename(title, self.config.max_name_bytes - _SUFFIX_RESERVE)

    def create_note(self, directory: Path, title: str, content: str = "") -> Note:
        """Create a new note file named after *title* and return it."""
        directory = Path(directory)
        stem = self._stem(title)
        suffix = f".{self.config.primary_extension}"
        for target in self._candidates(directory, stem, suffix):
            try:
                # reserve the name; "x" fails if another writer got there first
                with open(target, "x", encoding="utf-8"):
                    pass
            except FileExistsError:
                continue
            except OSError as exc:
                raise WriteFailure(target, exc) from exc
            break
        else:
            raise TooManyDuplicates(directory, stem, self.config.max_duplicates)

        try:
            # a new note starts with default metadata, whatever an earlier file of this name had
            self.sidecar.discard(target)
            self._atomic_write(target, self._encode(content, target))
        except (OSError, SidecarFailure) as exc:
            target.unlink(missing_ok=True)
            raise WriteFailure(target, exc) from exc
        logger.info("created note %s", target.name)
        return self.read_note(target)

    def rename_note(self, note: Note, new_title: str) -> Path:
        """Move *note*'s file to a name derived from *new_title*.

        Returns the new location.  The body is rewritten; plain-text formats
        get ``"<title>\\n\\n"`` prepended so the title survives in the content.
        """
        source = note.location
        directory = source.parent
        suffix = source.suffix
        stem = self._stem(new_title)

        # read metadata first: the move and the rewrite can both lose it
        tags = self.read_tags(source)
        pinned = self.read_pinned(source)

        target = None
        for candidate in self._candidates(directory, stem, suffix):
            if candidate == source or not candidate.exists() or _same_file(candidate, source):
                target = candidate
                break
        if target is None:
            raise TooManyDuplicates(directory, stem, self.config.max_duplicates)

        moved = False
        try:
            if target != source:
                source.rename(target)
                moved = True
                self.sidecar.move(source, target)
            self._atomic_write(target, self._encode(self._retitled_body(note, new_title), target))
            self.stamp(target)
            self._reapply_metadata(target, tags, pinned)
        except (OSError, SidecarFailure) as exc:
            if moved:
                self._undo_move(target, source, tags, pinned)
            raise RenameFailure(source, exc) from exc
        logger.info("renamed note %s -> %s", source.name, target.name)
        return target

    def _undo_move(self, target: Path, source: Path, tags: set[str], pinned: bool) -> None:
        # the file must be back at note.location when rename_note raises
        try:
            target.rename(source)
            self.sidecar.discard(target)
            self._reapply_metadata(source, tags, pinned)
        except (OSError, SidecarFailure):
            logger.error("could not move %s back to %s", target, source, exc_info=True)

    @staticmethod
    def _retitled_body(note: Note, new_title: str) -> str:
        if note.extension == RICH_EXTENSION:
            return note.content
        body = note.content
        old_header = f"{note.title}\n\n"
        if body.startswith(old_header):
            body = body[len(old_header):]
        return f"{new_title}\n\n{body}"

    def delete_note(self, path: Path) -> None:
        """Move *path* to the trash (never a permanent delete)."""
        path = Path(path)
        try:
            if self.config.trash_dir is not None:
                self._move_to_trash_dir(path, self.config.trash_dir)
            else:
                send2trash(path)
        except (OSError, TooManyDuplicates) as exc:
            raise DeleteFailure(path, exc) from exc
        try:
            self.sidecar.discard(path)
        except SidecarFailure:
            logger.warning("could not drop metadata for deleted note %s", path, exc_info=True)
        logger.info("trashed note %s", path.name)

    def _move_to_trash_dir(self, path: Path, trash_dir: Path) -> None:
        trash_dir.mkdir(parents=True, exist_ok=True)
        for candidate in self._candidates(trash_dir, path.stem, path.suffix):
            if not candidate.exists():
                shutil.move(str(path), str(candidate))
                return
        raise TooManyDuplicates(trash_dir, path.stem, self.config.max_duplicates)

    # ------------------------------------------------------------------
    # Scan
    # ------------------------------------------------------------------

    def load_all(self, directory: Path) -> list[Note]:
        """Read every supported note in *directory*, newest first.

        Unreadable files are skipped; only a missing or unlistable
        directory fails the scan.
        """
        directory = Path(directory)
        if not directory.is_dir():
            raise DirectoryNotAccessible(directory)
        try:
            entries = sorted(directory.iterdir())
        except OSError as exc:
            raise DirectoryNotAccessible(directory, exc) from exc

        # metadata of files removed behind our back must not reach a later file of the same name
        try:
            self.sidecar.prune(path.name for path in entries)
        except SidecarFailure:
            logger.warning("could not prune metadata index in %s", directory, exc_info=True)

        notes: list[Note] = []
        for path in entries:
            if path.name.startswith(".") or not self.config.is_supported(path) or not path.is_file():
                continue
            try:
                notes.append(self.read_note(path))
            except ReadFailure as exc:
                logger.warning("skipping unreadable note %s: %s", path, exc.cause)
        notes.sort(key=lambda n: n.modified_at, reverse=True)
        return notes


def _same_file(a: Path, b: Path) -> bool:
    try:
        return a.samefile(b)
    except OSError:
        return False

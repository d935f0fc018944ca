"""Error taxonomy for the note store.

Every failure the codec or the sidecar can report derives from
:class:`NoteError`.  Path-bearing errors keep the offending path and the
underlying exception (also chained via ``raise ... from``).
"""

from __future__ import annotations

from pathlib import Path


class NoteError(Exception):
    """Base class for all note store errors."""


class DirectoryNotAccessible(NoteError):
    def __init__(self, directory: Path, cause: BaseException | None = None) -> None:
        self.directory = Path(directory)
        self.cause = cause
        super().__init__(f"Notes directory is not accessible: {self.directory}")


class _PathFailure(NoteError):
    verb = "access"

    def __init__(self, path: Path, cause: BaseException | None = None) -> None:
        self.path = Path(path)
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Failed to {self.verb} {self.path}{detail}")


class ReadFailure(_PathFailure):
    verb = "read"


class WriteFailure(_PathFailure):
    verb = "write"


class DeleteFailure(_PathFailure):
    verb = "delete"


class RenameFailure(_PathFailure):
    verb = "rename"


class SidecarFailure(_PathFailure):
    """Raised by :meth:`MetadataSidecar.set` when an attribute cannot be stored."""

    verb = "store metadata for"


class TooManyDuplicates(NoteError):
    def __init__(self, directory: Path, stem: str, attempts: int) -> None:
        self.directory = Path(directory)
        self.stem = stem
        self.attempts = attempts
        super().__init__(
            f"Could not find a free file name for {stem!r} in {self.directory} "
            f"after {attempts} attempts"
        )

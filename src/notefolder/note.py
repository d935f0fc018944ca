"""Core Note dataclass."""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from notefolder.rtf import rtf_to_plain


def normalize_tags(tags: Iterable[str]) -> set[str]:
    """Trim and lower-case *tags*, dropping empty strings."""
    return {t.strip().lower() for t in tags if t and t.strip()}


@dataclass(eq=False)
class Note:
    """A single note file in the notes directory.

    ``title`` is always derived from the filename stem; ``content`` holds the
    body in the file's native encoding (RTF markup or plain text).
    """

    title: str
    content: str
    location: Path
    created_at: datetime = field(default_factory=datetime.now)
    modified_at: datetime = field(default_factory=datetime.now)
    tags: set[str] = field(default_factory=set)
    pinned: bool = False
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self) -> None:
        self.location = Path(self.location)
        self.tags = normalize_tags(self.tags)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Note):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    @property
    def file_name(self) -> str:
        return self.location.name

    @property
    def extension(self) -> str:
        """Lower-case extension without the leading dot."""
        return self.location.suffix.lstrip(".").lower()

    @property
    def preview(self) -> str:
        """First 100 characters of the plain-text body."""
        return rtf_to_plain(self.content).strip()[:100]

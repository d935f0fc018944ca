"""StoreConfig: tunables for the note store.

Settings live in an optional TOML file::

    [notefolder]
    extensions        = ["rtf", "txt", "md"]
    primary_extension = "rtf"
    debounce_seconds  = 0.5
    settle_seconds    = 0.5
    sidecar           = "auto"      # "xattr" | "index" | "auto"
    index_filename    = ".notefolder.yaml"
    # trash_dir       = "~/.local/share/notefolder-trash"
    max_duplicates    = 1000
    max_name_bytes    = 255
    watch             = true

Every key is optional; missing keys keep their defaults.
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

_TABLE = "notefolder"
_SIDECAR_KINDS = ("auto", "xattr", "index")


@dataclass
class StoreConfig:
    extensions: list[str] = field(default_factory=lambda: ["rtf", "txt", "md"])
    primary_extension: str = "rtf"
    debounce_seconds: float = 0.5
    settle_seconds: float = 0.5
    sidecar: str = "auto"
    index_filename: str = ".notefolder.yaml"
    trash_dir: Path | None = None
    max_duplicates: int = 1000
    max_name_bytes: int = 255
    watch: bool = True

    def __post_init__(self) -> None:
        self.extensions = [e.lstrip(".").lower() for e in self.extensions]
        self.primary_extension = self.primary_extension.lstrip(".").lower()
        if self.primary_extension not in self.extensions:
            raise ValueError(
                f"primary_extension {self.primary_extension!r} is not in extensions {self.extensions}"
            )
        if self.sidecar not in _SIDECAR_KINDS:
            raise ValueError(f"sidecar must be one of {_SIDECAR_KINDS}, got {self.sidecar!r}")
        if self.trash_dir is not None:
            self.trash_dir = Path(self.trash_dir).expanduser()

    def is_supported(self, path: Path) -> bool:
        """True when *path* has a whitelisted extension."""
        return path.suffix.lstrip(".").lower() in self.extensions

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StoreConfig":
        table = data.get(_TABLE, data)
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in table.items() if k in known})


def load_config(path: Path | None = None) -> StoreConfig:
    """Read a :class:`StoreConfig` from *path*, or return the defaults."""
    if path is None or not Path(path).exists():
        return StoreConfig()
    with open(path, "rb") as fh:
        data = tomllib.load(fh)
    return StoreConfig.from_dict(data)

"""Out-of-band note metadata (tags, pinned flag).

Metadata never lives in the note body.  Two backends satisfy the
:class:`MetadataSidecar` protocol:

- :class:`XattrSidecar` stores each key as a user extended attribute on the
  note file itself (``user.notefolder.<key>``).
- :class:`IndexFileSidecar` keeps a YAML index file inside the notes
  directory, for filesystems without extended attributes::

      Shopping list.rtf:
        tags: errands,home
        pinned: '1'

An absent attribute is never an error; ``get`` returns ``None`` and the
caller applies its default.  ``set`` raises :class:`SidecarFailure` and
never retries.
"""

from __future__ import annotations

import errno
import logging
import os
import tempfile
import threading
from collections.abc import Iterable
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

import yaml

from notefolder.errors import SidecarFailure

if TYPE_CHECKING:
    from notefolder.config import StoreConfig

logger = logging.getLogger(__name__)

TAGS_KEY = "tags"
PINNED_KEY = "pinned"

_XATTR_NAMESPACE = "user.notefolder."


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class MetadataSidecar(Protocol):
    def get(self, path: Path, key: str) -> bytes | None: ...
    def set(self, path: Path, key: str, value: bytes) -> None: ...
    def discard(self, path: Path) -> None: ...
    def move(self, src: Path, dst: Path) -> None: ...
    def prune(self, keep: Iterable[str]) -> None: ...


# ---------------------------------------------------------------------------
# Extended attributes
# ---------------------------------------------------------------------------


class XattrSidecar:
    """Extended-attribute backend (Linux ``user.*`` namespace)."""

    @staticmethod
    def supported(directory: Path) -> bool:
        """Probe whether files in *directory* accept user extended attributes."""
        if not hasattr(os, "setxattr"):
            return False
        try:
            fd, probe = tempfile.mkstemp(prefix=".notefolder-probe-", dir=directory)
        except OSError:
            return False
        os.close(fd)
        try:
            os.setxattr(probe, _XATTR_NAMESPACE + "probe", b"1")
            return True
        except OSError:
            return False
        finally:
            os.unlink(probe)

    def get(self, path: Path, key: str) -> bytes | None:
        try:
            return os.getxattr(path, _XATTR_NAMESPACE + key)
        except OSError as exc:
            if exc.errno not in (errno.ENODATA, getattr(errno, "ENOATTR", errno.ENODATA)):
                logger.debug("cannot read %s from %s: %s", key, path, exc)
            return None

    def set(self, path: Path, key: str, value: bytes) -> None:
        try:
            os.setxattr(path, _XATTR_NAMESPACE + key, value)
        except OSError as exc:
            raise SidecarFailure(path, exc) from exc

    def discard(self, path: Path) -> None:
        # attributes die with the file
        pass

    def move(self, src: Path, dst: Path) -> None:
        # rename(2) keeps the inode and therefore its attributes
        pass

    def prune(self, keep: Iterable[str]) -> None:
        pass


# ---------------------------------------------------------------------------
# Index file
# ---------------------------------------------------------------------------


class IndexFileSidecar:
    """YAML index file backend, keyed by note file name."""

    def __init__(self, directory: Path, filename: str = ".notefolder.yaml") -> None:
        self.index_path = Path(directory) / filename
        self._lock = threading.Lock()
        self._cache: dict[str, dict[str, str]] = {}
        self._cache_stamp: tuple[int, int] | None = None

    def _load(self) -> dict[str, dict[str, str]]:
        try:
            st = self.index_path.stat()
        except FileNotFoundError:
            self._cache, self._cache_stamp = {}, None
            return self._cache
        stamp = (st.st_mtime_ns, st.st_size)
        if stamp == self._cache_stamp:
            return self._cache
        try:
            data = yaml.safe_load(self.index_path.read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as exc:
            logger.warning("ignoring unreadable metadata index %s: %s", self.index_path, exc)
            data = {}
        if not isinstance(data, dict):
            data = {}
        self._cache = {
            str(name): {str(k): str(v) for k, v in attrs.items()}
            for name, attrs in data.items()
            if isinstance(attrs, dict)
        }
        self._cache_stamp = stamp
        return self._cache

    def _save(self, data: dict[str, dict[str, str]]) -> None:
        text = yaml.safe_dump(data, sort_keys=True, allow_unicode=True)
        fd, tmp = tempfile.mkstemp(prefix=self.index_path.name + ".", suffix=".tmp", dir=self.index_path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(text)
            os.replace(tmp, self.index_path)
        except OSError:
            Path(tmp).unlink(missing_ok=True)
            raise
        self._cache_stamp = None

    def get(self, path: Path, key: str) -> bytes | None:
        with self._lock:
            value = self._load().get(Path(path).name, {}).get(key)
        return None if value is None else value.encode("utf-8")

    def set(self, path: Path, key: str, value: bytes) -> None:
        with self._lock:
            data = {name: dict(attrs) for name, attrs in self._load().items()}
            data.setdefault(Path(path).name, {})[key] = value.decode("utf-8")
            try:
                self._save(data)
            except OSError as exc:
                raise SidecarFailure(path, exc) from exc

    def discard(self, path: Path) -> None:
        with self._lock:
            data = {name: dict(attrs) for name, attrs in self._load().items()}
            if data.pop(Path(path).name, None) is None:
                return
            try:
                self._save(data)
            except OSError as exc:
                raise SidecarFailure(path, exc) from exc

    def move(self, src: Path, dst: Path) -> None:
        with self._lock:
            data = {name: dict(attrs) for name, attrs in self._load().items()}
            attrs = data.pop(Path(src).name, None)
            if attrs is None:
                return
            data[Path(dst).name] = attrs
            try:
                self._save(data)
            except OSError as exc:
                raise SidecarFailure(dst, exc) from exc

    def prune(self, keep: Iterable[str]) -> None:
        """Drop entries for file names not in *keep*."""
        keep = set(keep)
        with self._lock:
            current = self._load()
            data = {name: dict(attrs) for name, attrs in current.items() if name in keep}
            if len(data) == len(current):
                return
            try:
                self._save(data)
            except OSError as exc:
                raise SidecarFailure(self.index_path, exc) from exc


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------


def open_sidecar(directory: Path, config: "StoreConfig") -> MetadataSidecar:
    """Return the sidecar backend *config* asks for in *directory*."""
    kind = config.sidecar
    if kind == "auto":
        kind = "xattr" if XattrSidecar.supported(directory) else "index"
        logger.info("metadata sidecar for %s: %s", directory, kind)
    if kind == "xattr":
        return XattrSidecar()
    return IndexFileSidecar(directory, config.index_filename)

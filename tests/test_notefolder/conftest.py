"""Shared fixtures: a notes directory, a codec and a store bound to it.

The store uses the YAML index sidecar (works on every filesystem) and a
private trash directory so tests never touch the user's real trash.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from notefolder.codec import NoteCodec
from notefolder.config import StoreConfig
from notefolder.sidecar import IndexFileSidecar
from notefolder.store import NoteStore


@pytest.fixture()
def notes_dir(tmp_path: Path) -> Path:
    d = tmp_path / "notes"
    d.mkdir()
    return d


@pytest.fixture()
def config(tmp_path: Path) -> StoreConfig:
    return StoreConfig(
        sidecar="index",
        trash_dir=tmp_path / "trash",
        debounce_seconds=0.1,
        settle_seconds=0.05,
        watch=False,
    )


@pytest.fixture()
def codec(notes_dir: Path, config: StoreConfig) -> NoteCodec:
    return NoteCodec(IndexFileSidecar(notes_dir, config.index_filename), config)


@pytest.fixture()
def store(notes_dir: Path, config: StoreConfig):
    s = NoteStore(config)
    s.set_directory(notes_dir)
    yield s
    s.close()

"""Unit tests for notefolder.sidecar."""

import os
from pathlib import Path

import pytest
import yaml

from notefolder.config import StoreConfig
from notefolder.errors import SidecarFailure
from notefolder.sidecar import (
    PINNED_KEY,
    TAGS_KEY,
    IndexFileSidecar,
    MetadataSidecar,
    XattrSidecar,
    open_sidecar,
)


@pytest.fixture()
def note_file(tmp_path: Path) -> Path:
    path = tmp_path / "Shopping.txt"
    path.write_text("milk", encoding="utf-8")
    return path


# ---------------------------------------------------------------------------
# IndexFileSidecar
# ---------------------------------------------------------------------------


class TestIndexFileSidecar:
    def test_satisfies_protocol(self, tmp_path: Path):
        assert isinstance(IndexFileSidecar(tmp_path), MetadataSidecar)

    def test_absent_attribute_is_none(self, tmp_path: Path, note_file: Path):
        assert IndexFileSidecar(tmp_path).get(note_file, TAGS_KEY) is None

    def test_set_then_get(self, tmp_path: Path, note_file: Path):
        sidecar = IndexFileSidecar(tmp_path)
        sidecar.set(note_file, TAGS_KEY, b"errands,home")
        assert sidecar.get(note_file, TAGS_KEY) == b"errands,home"

    def test_persists_to_yaml(self, tmp_path: Path, note_file: Path):
        IndexFileSidecar(tmp_path).set(note_file, PINNED_KEY, b"1")
        data = yaml.safe_load((tmp_path / ".notefolder.yaml").read_text())
        assert data == {"Shopping.txt": {"pinned": "1"}}

    def test_visible_to_second_instance(self, tmp_path: Path, note_file: Path):
        IndexFileSidecar(tmp_path).set(note_file, PINNED_KEY, b"1")
        assert IndexFileSidecar(tmp_path).get(note_file, PINNED_KEY) == b"1"

    def test_keys_are_independent(self, tmp_path: Path, note_file: Path):
        sidecar = IndexFileSidecar(tmp_path)
        sidecar.set(note_file, TAGS_KEY, b"a")
        sidecar.set(note_file, PINNED_KEY, b"1")
        assert sidecar.get(note_file, TAGS_KEY) == b"a"
        assert sidecar.get(note_file, PINNED_KEY) == b"1"

    def test_discard(self, tmp_path: Path, note_file: Path):
        sidecar = IndexFileSidecar(tmp_path)
        sidecar.set(note_file, TAGS_KEY, b"a")
        sidecar.discard(note_file)
        assert sidecar.get(note_file, TAGS_KEY) is None

    def test_discard_unknown_is_noop(self, tmp_path: Path, note_file: Path):
        IndexFileSidecar(tmp_path).discard(note_file)
        assert not (tmp_path / ".notefolder.yaml").exists()

    def test_move(self, tmp_path: Path, note_file: Path):
        sidecar = IndexFileSidecar(tmp_path)
        sidecar.set(note_file, TAGS_KEY, b"a")
        sidecar.move(note_file, tmp_path / "Groceries.txt")
        assert sidecar.get(note_file, TAGS_KEY) is None
        assert sidecar.get(tmp_path / "Groceries.txt", TAGS_KEY) == b"a"

    def test_prune(self, tmp_path: Path, note_file: Path):
        sidecar = IndexFileSidecar(tmp_path)
        sidecar.set(note_file, TAGS_KEY, b"a")
        sidecar.set(tmp_path / "Gone.txt", PINNED_KEY, b"1")
        sidecar.prune(["Shopping.txt"])
        assert sidecar.get(tmp_path / "Gone.txt", PINNED_KEY) is None
        assert sidecar.get(note_file, TAGS_KEY) == b"a"

    def test_prune_without_stale_entries_leaves_index_alone(self, tmp_path: Path, note_file: Path):
        sidecar = IndexFileSidecar(tmp_path)
        sidecar.set(note_file, TAGS_KEY, b"a")
        before = (tmp_path / ".notefolder.yaml").stat().st_mtime_ns
        sidecar.prune(["Shopping.txt", "Other.txt"])
        assert (tmp_path / ".notefolder.yaml").stat().st_mtime_ns == before

    def test_corrupt_index_reads_as_empty(self, tmp_path: Path, note_file: Path):
        (tmp_path / ".notefolder.yaml").write_text(": not: [valid", encoding="utf-8")
        assert IndexFileSidecar(tmp_path).get(note_file, TAGS_KEY) is None

    def test_external_edit_is_picked_up(self, tmp_path: Path, note_file: Path):
        sidecar = IndexFileSidecar(tmp_path)
        sidecar.set(note_file, TAGS_KEY, b"a")
        (tmp_path / ".notefolder.yaml").write_text(
            "Shopping.txt:\n  tags: changed,externally\n", encoding="utf-8"
        )
        assert sidecar.get(note_file, TAGS_KEY) == b"changed,externally"

    def test_set_in_missing_directory_fails(self, tmp_path: Path):
        sidecar = IndexFileSidecar(tmp_path / "gone")
        with pytest.raises(SidecarFailure):
            sidecar.set(tmp_path / "gone" / "x.txt", TAGS_KEY, b"a")


# ---------------------------------------------------------------------------
# XattrSidecar
# ---------------------------------------------------------------------------


class TestXattrSidecar:
    @pytest.fixture(autouse=True)
    def _require_xattrs(self, tmp_path: Path):
        if not XattrSidecar.supported(tmp_path):
            pytest.skip("filesystem has no user extended attributes")

    def test_absent_attribute_is_none(self, note_file: Path):
        assert XattrSidecar().get(note_file, TAGS_KEY) is None

    def test_set_then_get(self, note_file: Path):
        sidecar = XattrSidecar()
        sidecar.set(note_file, PINNED_KEY, b"1")
        assert sidecar.get(note_file, PINNED_KEY) == b"1"

    def test_survives_rename(self, tmp_path: Path, note_file: Path):
        sidecar = XattrSidecar()
        sidecar.set(note_file, TAGS_KEY, b"a,b")
        moved = tmp_path / "Moved.txt"
        note_file.rename(moved)
        sidecar.move(note_file, moved)
        assert sidecar.get(moved, TAGS_KEY) == b"a,b"


@pytest.mark.skipif(not hasattr(os, "setxattr"), reason="no xattr API on this platform")
class TestXattrSidecarFailures:
    def test_set_on_missing_file_fails(self, tmp_path: Path):
        with pytest.raises(SidecarFailure):
            XattrSidecar().set(tmp_path / "missing.txt", TAGS_KEY, b"a")

    def test_get_on_missing_file_is_none(self, tmp_path: Path):
        assert XattrSidecar().get(tmp_path / "missing.txt", TAGS_KEY) is None


# ---------------------------------------------------------------------------
# open_sidecar
# ---------------------------------------------------------------------------


class TestOpenSidecar:
    def test_index_requested(self, tmp_path: Path):
        sidecar = open_sidecar(tmp_path, StoreConfig(sidecar="index"))
        assert isinstance(sidecar, IndexFileSidecar)

    def test_xattr_requested(self, tmp_path: Path):
        assert isinstance(open_sidecar(tmp_path, StoreConfig(sidecar="xattr")), XattrSidecar)

    def test_auto_matches_filesystem(self, tmp_path: Path):
        sidecar = open_sidecar(tmp_path, StoreConfig(sidecar="auto"))
        expected = XattrSidecar if XattrSidecar.supported(tmp_path) else IndexFileSidecar
        assert isinstance(sidecar, expected)

    def test_auto_probe_leaves_no_files(self, tmp_path: Path):
        open_sidecar(tmp_path, StoreConfig(sidecar="auto"))
        assert list(tmp_path.iterdir()) == []

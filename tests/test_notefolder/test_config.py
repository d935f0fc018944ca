"""Unit tests for notefolder.config."""

import textwrap
from pathlib import Path

import pytest

from notefolder.config import StoreConfig, load_config


class TestStoreConfig:
    def test_defaults(self):
        cfg = StoreConfig()
        assert cfg.extensions == ["rtf", "txt", "md"]
        assert cfg.primary_extension == "rtf"
        assert cfg.debounce_seconds == 0.5
        assert cfg.max_duplicates == 1000
        assert cfg.trash_dir is None

    def test_extensions_normalized(self):
        cfg = StoreConfig(extensions=[".TXT", "md"], primary_extension=".txt")
        assert cfg.extensions == ["txt", "md"]
        assert cfg.primary_extension == "txt"

    def test_primary_must_be_whitelisted(self):
        with pytest.raises(ValueError):
            StoreConfig(extensions=["txt"], primary_extension="rtf")

    def test_unknown_sidecar_rejected(self):
        with pytest.raises(ValueError):
            StoreConfig(sidecar="sqlite")

    def test_is_supported(self):
        cfg = StoreConfig()
        assert cfg.is_supported(Path("a.RTF"))
        assert cfg.is_supported(Path("a.md"))
        assert not cfg.is_supported(Path("a.docx"))
        assert not cfg.is_supported(Path("README"))


class TestLoadConfig:
    def test_missing_file_gives_defaults(self, tmp_path: Path):
        assert load_config(tmp_path / "nope.toml") == StoreConfig()

    def test_none_gives_defaults(self):
        assert load_config(None) == StoreConfig()

    def test_reads_table(self, tmp_path: Path):
        path = tmp_path / "notefolder.toml"
        path.write_text(textwrap.dedent("""\
            [notefolder]
            extensions = ["md", "txt"]
            primary_extension = "md"
            debounce_seconds = 1.5
            sidecar = "index"
            trash_dir = "trash"
            unknown_key = "ignored"
        """))
        cfg = load_config(path)
        assert cfg.extensions == ["md", "txt"]
        assert cfg.primary_extension == "md"
        assert cfg.debounce_seconds == 1.5
        assert cfg.sidecar == "index"
        assert cfg.trash_dir == Path("trash")

    def test_flat_dict_without_table(self):
        cfg = StoreConfig.from_dict({"settle_seconds": 2.0})
        assert cfg.settle_seconds == 2.0

"""
Tests for deck export and Anki media helpers.
"""

import pytest

from mnemonic_maker.errors import ExportError
from mnemonic_maker.exporter import (
    atomic_write_bytes, available_profiles, collection_media, copy_media,
    deck_rows, image_tag, sound_tag, write_export
)
from mnemonic_maker.structures import Card


@pytest.fixture
def cards():
    return [
        Card(index=2, phrase="lune", translation="moon"),
        Card(index=1, phrase="chat noir", translation="black cat"),
    ]


class TestTags:
    """Test Anki media tags."""

    def test_image_tag(self):
        """Test image tag format."""
        assert image_tag("r_0001_img.jpg") == '<img src="r_0001_img.jpg">'
        assert image_tag(None) == ""

    def test_sound_tag(self):
        """Test sound tag format."""
        assert sound_tag("r_0001_audio.mp3") == "[sound:r_0001_audio.mp3]"
        assert sound_tag(None) == ""


class TestWriteExport:
    """Test write_export()."""

    def test_rows_in_card_order(self, tmp_path, cards):
        """Test deck rows follow card index and missing media give empty fields."""
        lune, chat = cards
        deck = write_export(cards, {chat.id: "r_0001_img.jpg"}, {lune.id: "r_0002_audio.mp3"}, tmp_path)

        assert deck == tmp_path / "deck.tsv"
        assert (tmp_path / "media").is_dir()
        assert deck.read_text(encoding="utf-8") == (
            'chat noir\tblack cat\t<img src="r_0001_img.jpg">\t\n'
            "lune\tmoon\t\t[sound:r_0002_audio.mp3]\n"
        )

    def test_mnemonic_column(self, tmp_path, cards):
        """Test the mnemonic column is added when mnemonic names are given."""
        lune, chat = cards
        rows = deck_rows(cards, {}, {}, {lune.id: "r_0002_mnemonic.wav"})

        assert rows == [
            "chat noir\tblack cat\t\t\t",
            "lune\tmoon\t\t\t[sound:r_0002_mnemonic.wav]",
        ]

    def test_fields_are_sanitized(self):
        """Test tabs and newlines inside fields do not break columns."""
        card = Card(index=1, phrase="a\tb", translation="line\nbreak")

        assert deck_rows([card], {}, {}) == ["a b\tline break\t\t"]

    def test_write_failure(self, tmp_path, cards):
        """Test an unwritable deck raises ExportError."""
        (tmp_path / "deck.tsv").mkdir()

        with pytest.raises(ExportError):
            write_export(cards, {}, {}, tmp_path)

    def test_atomic_write_replaces(self, tmp_path):
        """Test atomic writes replace existing content."""
        path = tmp_path / "file.bin"
        path.write_bytes(b"old")

        atomic_write_bytes(path, b"new")

        assert path.read_bytes() == b"new"
        assert [p.name for p in tmp_path.iterdir()] == ["file.bin"]


class TestAnkiProfiles:
    """Test Anki profile discovery and media copying."""

    def test_available_profiles(self, tmp_path):
        """Test only directories with a collection file count as profiles."""
        for name in ("User 1", "Spanish", "addons21", "empty"):
            (tmp_path / name).mkdir()
        (tmp_path / "User 1" / "collection.anki2").write_bytes(b"")
        (tmp_path / "Spanish" / "collection.anki2").write_bytes(b"")
        (tmp_path / "addons21" / "collection.anki2").write_bytes(b"")
        (tmp_path / "prefs21.db").write_bytes(b"")

        assert available_profiles(tmp_path) == ["Spanish", "User 1"]

    def test_missing_base_dir(self, tmp_path):
        """Test a missing Anki directory gives no profiles."""
        assert available_profiles(tmp_path / "nope") == []

    def test_collection_media(self, tmp_path):
        """Test the collection.media path."""
        assert collection_media("User 1", tmp_path) == tmp_path / "User 1" / "collection.media"

    def test_copy_media_overwrites(self, tmp_path):
        """Test media copy overwrites files already in the destination."""
        source = tmp_path / "media"
        source.mkdir()
        (source / "a.jpg").write_bytes(b"new")
        (source / "b.mp3").write_bytes(b"audio")
        destination = tmp_path / "collection.media"
        destination.mkdir()
        (destination / "a.jpg").write_bytes(b"old")

        copied = copy_media(source, destination)

        assert copied == 2
        assert (destination / "a.jpg").read_bytes() == b"new"

    def test_copy_media_missing_source(self, tmp_path):
        """Test a missing source folder raises ExportError."""
        with pytest.raises(ExportError):
            copy_media(tmp_path / "missing", tmp_path / "dest")

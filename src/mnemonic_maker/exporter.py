"""
Deck export and Anki media helpers.
Writes deck.tsv next to the media folder, finds Anki profiles and copies media
into a profile's collection.media directory.
"""

import logging
import os
import shutil
import sys
import tempfile
import uuid
from contextlib import suppress
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from .errors import ExportError
from .structures import Card

logger = logging.getLogger(__name__)

DECK_FILENAME = "deck.tsv"
MEDIA_DIRNAME = "media"


def image_tag(filename: Optional[str]) -> str:
    """Create Anki image tag, or an empty field when there is no image."""
    return f'<img src="{filename}">' if filename else ""


def sound_tag(filename: Optional[str]) -> str:
    """Create Anki sound tag, or an empty field when there is no audio."""
    return f"[sound:{filename}]" if filename else ""


def _clean_field(value: str) -> str:
    # A tab or newline inside a field would shift the deck's columns
    return value.replace("\t", " ").replace("\r", " ").replace("\n", " ")


def deck_rows(cards: Iterable[Card],
              image_names: Dict[uuid.UUID, str],
              audio_names: Dict[uuid.UUID, str],
              mnemonic_names: Optional[Dict[uuid.UUID, str]] = None) -> List[str]:
    """Render one deck line per card, in card order."""
    rows = []
    for card in sorted(cards, key=lambda c: c.index):
        columns = [
            _clean_field(card.phrase),
            _clean_field(card.translation),
            image_tag(image_names.get(card.id)),
            sound_tag(audio_names.get(card.id)),
        ]
        if mnemonic_names is not None:
            columns.append(sound_tag(mnemonic_names.get(card.id)))
        rows.append("\t".join(columns))
    return rows


def atomic_write_bytes(path: Path, data: bytes):
    """Write ``data`` to ``path`` through a temporary file and a rename."""
    path = Path(path)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp_name, path)
    except BaseException:
        with suppress(FileNotFoundError):
            os.unlink(tmp_name)
        raise


def write_export(cards: Iterable[Card],
                 image_names: Dict[uuid.UUID, str],
                 audio_names: Dict[uuid.UUID, str],
                 folder: Path,
                 mnemonic_names: Optional[Dict[uuid.UUID, str]] = None) -> Path:
    """Write deck.tsv into ``folder`` and make sure its media/ folder exists.

    Cards without a generated asset get an empty field in that column. Returns
    the path of the deck file; raises ExportError if anything cannot be written.
    """
    folder = Path(folder)
    deck_path = folder / DECK_FILENAME
    rows = deck_rows(cards, image_names, audio_names, mnemonic_names)
    content = "\n".join(rows) + ("\n" if rows else "")

    try:
        (folder / MEDIA_DIRNAME).mkdir(parents=True, exist_ok=True)
        atomic_write_bytes(deck_path, content.encode("utf-8"))
    except OSError as e:
        raise ExportError(f"Could not write {deck_path}: {e}") from e

    logger.info("Wrote %d rows to %s", len(rows), deck_path)
    return deck_path


def anki_profiles_dir() -> Path:
    """Return the platform's Anki2 base directory."""
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "Anki2"
    if sys.platform.startswith("win"):
        appdata = os.environ.get("APPDATA")
        base = Path(appdata) if appdata else Path.home() / "AppData" / "Roaming"
        return base / "Anki2"
    data_home = os.environ.get("XDG_DATA_HOME")
    base = Path(data_home) if data_home else Path.home() / ".local" / "share"
    return base / "Anki2"


def available_profiles(base_dir: Optional[Path] = None) -> List[str]:
    """List Anki profile names: subdirectories holding a collection.anki2 file."""
    base_dir = Path(base_dir) if base_dir else anki_profiles_dir()
    if not base_dir.is_dir():
        return []

    profiles = []
    for entry in base_dir.iterdir():
        if entry.name == "addons21" or not entry.is_dir():
            continue
        if (entry / "collection.anki2").exists():
            profiles.append(entry.name)
    return sorted(profiles)


def collection_media(profile: str, base_dir: Optional[Path] = None) -> Path:
    """Path of the collection.media folder for ``profile``."""
    base_dir = Path(base_dir) if base_dir else anki_profiles_dir()
    return base_dir / profile / "collection.media"


def copy_media(source_dir: Path, destination_dir: Path) -> int:
    """Copy every file in ``source_dir`` into ``destination_dir``, overwriting.

    Returns the number of files copied.
    """
    source_dir = Path(source_dir)
    destination_dir = Path(destination_dir)
    copied = 0
    try:
        destination_dir.mkdir(parents=True, exist_ok=True)
        for item in sorted(source_dir.iterdir()):
            if not item.is_file() or item.name.startswith("."):
                continue
            shutil.copy2(item, destination_dir / item.name)
            copied += 1
    except OSError as e:
        raise ExportError(f"Could not copy media to {destination_dir}: {e}") from e

    logger.info("Copied %d media files to %s", copied, destination_dir)
    return copied

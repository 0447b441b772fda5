"""
TSV input parsing: one ``phrase<TAB>translation`` pair per line.
"""

import logging
from pathlib import Path
from typing import List, Union

from .structures import Card

logger = logging.getLogger(__name__)


def parse_tsv(text: str) -> List[Card]:
    """Parse tab-separated text into cards.

    A card's index is the position of its line among the non-empty lines of
    the input, counted from 1, so skipped lines leave gaps in the numbering
    and media names stay stable when a bad line is fixed later. Extra columns
    are ignored; lines with fewer than two columns or an empty phrase are
    skipped.
    """
    cards = []
    skipped = 0
    lines = [line for line in text.splitlines() if line]
    for position, line in enumerate(lines, 1):
        columns = line.split("\t")
        if len(columns) < 2:
            if line.strip():
                skipped += 1
            continue
        phrase = columns[0].strip()
        translation = columns[1].strip()
        if not phrase:
            skipped += 1
            continue
        cards.append(Card(index=position, phrase=phrase, translation=translation))

    if skipped:
        logger.info("Skipped %d malformed input lines", skipped)
    return cards


def read_cards_from_file(file_path: Union[str, Path]) -> List[Card]:
    """Read and parse a UTF-8 TSV file."""
    with open(file_path, "r", encoding="utf-8-sig") as f:
        return parse_tsv(f.read())

"""
Tests for TSV input parsing.
"""

from mnemonic_maker.parser import parse_tsv, read_cards_from_file


class TestParseTsv:
    """Test parse_tsv()."""

    def test_basic_pairs(self):
        """Test phrase and translation columns."""
        cards = parse_tsv("chat noir\tblack cat\nlune\tmoon")

        assert [(c.index, c.phrase, c.translation) for c in cards] == [
            (1, "chat noir", "black cat"),
            (2, "lune", "moon"),
        ]

    def test_extra_columns_ignored(self):
        """Test columns after the second are dropped."""
        cards = parse_tsv("lune\tmoon\tnoun\tA1")

        assert cards[0].translation == "moon"

    def test_malformed_lines_skipped(self):
        """Test bad lines are skipped and cards keep their line position."""
        cards = parse_tsv("header only\n\nlune\tmoon\n   \nsoleil\tsun\n\tno phrase")

        assert [c.phrase for c in cards] == ["lune", "soleil"]
        assert [c.index for c in cards] == [2, 4]

    def test_index_follows_line_position(self):
        """Test a leading header line shifts the numbering of later cards."""
        cards = parse_tsv("header only\nchat noir\tblack cat\nlune\tmoon")

        assert [(c.index, c.phrase) for c in cards] == [(2, "chat noir"), (3, "lune")]

    def test_blank_lines_not_counted(self):
        """Test empty lines do not take a position."""
        cards = parse_tsv("chat noir\tblack cat\n\n\nlune\tmoon\n")

        assert [c.index for c in cards] == [1, 2]

    def test_windows_line_endings(self):
        """Test CRLF input and surrounding whitespace."""
        cards = parse_tsv(" lune \t moon \r\nsoleil\tsun\r\n")

        assert [(c.phrase, c.translation) for c in cards] == [("lune", "moon"), ("soleil", "sun")]

    def test_empty_input(self):
        """Test empty input gives no cards."""
        assert parse_tsv("") == []


class TestReadCardsFromFile:
    """Test read_cards_from_file()."""

    def test_reads_utf8_with_bom(self, tmp_path):
        """Test a UTF-8 file with a byte order mark."""
        path = tmp_path / "cards.tsv"
        path.write_bytes("\ufeffcafé\tcoffee\n".encode("utf-8"))

        cards = read_cards_from_file(path)

        assert cards[0].phrase == "café"

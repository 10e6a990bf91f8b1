"""Tests for recognized text normalization."""

import pytest

from vitaldoc.ocr.text import clean_extracted_text


class TestCleanExtractedText:
    """Tests for clean_extracted_text."""

    def test_collapses_whitespace(self) -> None:
        assert clean_extracted_text("  Hello   World  \n\n\n") == "Hello World"

    def test_keeps_line_breaks_between_lines(self) -> None:
        raw = "Name of Child:\t Abebe  Kebede \n\n  Sex: Male\r\n"
        assert clean_extracted_text(raw) == "Name of Child: Abebe Kebede\nSex: Male"

    @pytest.mark.parametrize("empty", [None, "", "   ", "\n\n\t\n"])
    def test_empty_input(self, empty: str | None) -> None:
        assert clean_extracted_text(empty) == ""

    @pytest.mark.parametrize(
        "raw",
        [
            "  Hello   World  \n\n\n",
            "a\r\nb\rc\n\n d ",
            "\t\ttabs\tand  spaces here ",
            "የልደት   ምስክር ወረቀት\n\n",
        ],
    )
    def test_idempotent(self, raw: str) -> None:
        once = clean_extracted_text(raw)
        assert clean_extracted_text(once) == once

"""Tests for chunk-safe output translation."""

import pytest

from termbridge.terminal import OutputTranslator


def translate(*chunks: str) -> bytes:
    translator = OutputTranslator()
    out = b"".join(translator.feed(chunk) for chunk in chunks)
    return out + translator.flush()


class TestOutputTranslator:
    """Tests for OutputTranslator."""

    def test_escape_token_becomes_byte(self):
        assert translate("\\x1b[32mok\\x1b[0m") == b"\x1b[32mok\x1b[0m"

    def test_uppercase_hex(self):
        assert translate("\\x1B") == b"\x1b"

    def test_bare_newline_becomes_crlf(self):
        assert translate("a\nb\r\nc") == b"a\r\nb\r\nc"

    def test_cr_and_lf_split_across_chunks(self):
        assert translate("a\r", "\nb") == b"a\r\nb"

    def test_partial_token_held_back(self):
        translator = OutputTranslator()

        assert translator.feed("red \\x1") == b"red "
        assert translator.pending == "\\x1"
        assert translator.feed("b[31m") == b"\x1b[31m"

    def test_lone_backslash_flushed_literally(self):
        assert translate("path\\") == b"path\\"

    def test_non_hex_after_prefix_is_literal(self):
        assert translate("\\x", "zz") == b"\\xzz"

    def test_utf8_text(self):
        assert translate("│ é") == "│ é".encode("utf-8")

    @pytest.mark.parametrize("text", ["\\x1b[1mbold\\x1b[0m\nnext\n", "a\\\\x41\n\\x0d\n", "plain\ntext"])
    def test_same_bytes_at_every_split(self, text):
        expected = translate(text)
        for split in range(len(text) + 1):
            assert translate(text[:split], text[split:]) == expected, f"split at {split}"

    def test_three_way_splits(self):
        text = "\\x1b[32m$\\x1b[0m done\n"
        expected = translate(text)
        for i in range(len(text) + 1):
            for j in range(i, len(text) + 1):
                assert translate(text[:i], text[i:j], text[j:]) == expected

"""Tests for incremental single-field extraction."""

import json

import pytest

from termbridge.stream import FieldExtractor


def feed_all(extractor: FieldExtractor, fragments) -> str:
    return "".join(extractor.feed(fragment) for fragment in fragments)


class TestFieldExtractor:
    """Tests for FieldExtractor."""

    def test_fragments_across_key_and_value(self):
        extractor = FieldExtractor("output")

        shown = feed_all(extractor, ['{"outp', 'ut": "hel', 'lo\\n"}'])

        assert shown == "hello\n"
        assert extractor.done

    def test_nothing_shown_before_field_opens(self):
        extractor = FieldExtractor("output")

        assert extractor.feed('{"other": "x", ') == ""
        assert not extractor.started

    def test_escapes(self):
        extractor = FieldExtractor("output")

        shown = feed_all(extractor, ['{"output": "a\\tb\\"c\\\\d\\/e\\rf"}'])

        assert shown == 'a\tb"c\\d/e\rf'

    def test_escape_split_across_fragments(self):
        extractor = FieldExtractor("output")

        shown = feed_all(extractor, ['{"output": "x\\', 'ny"}'])

        assert shown == "x\ny"

    def test_unicode_escape_split(self):
        extractor = FieldExtractor("output")

        shown = feed_all(extractor, ['{"output": "\\u00', 'e9t\\u00e9"}'])

        assert shown == "été"

    def test_surrogate_pair(self):
        extractor = FieldExtractor("output")

        shown = feed_all(extractor, ['{"output": "\\ud83d', '\\ude80"}'])

        assert shown == "\U0001F680"

    def test_trailing_content_ignored_after_close(self):
        extractor = FieldExtractor("output")

        shown = feed_all(extractor, ['{"output": "done"', ', "more": "ignored"}'])

        assert shown == "done"
        assert extractor.feed("anything") == ""

    @pytest.mark.parametrize("value", ["plain", "line one\nline two\n", 'quote " and \\ slash', "\x1b[32mgreen\x1b[0m"])
    def test_matches_json_decoding_at_every_split(self, value):
        raw = json.dumps({"output": value})
        for split in range(len(raw) + 1):
            extractor = FieldExtractor("output")
            shown = feed_all(extractor, [raw[:split], raw[split:]])
            assert shown == value, f"split at {split}"
            assert extractor.text == value

"""
Incremental extraction of one string field from a streaming JSON envelope.

Used in single-field mode, where the model is forced to emit exactly one
call whose only argument is a string. The raw envelope arrives in
arbitrary fragments (``{"outp``, ``ut": "hel``, ``lo\\n"}``); the
extractor buffers until the field's opening quote is found, then decodes
the string value one character at a time so it can be shown as it
streams.
"""

from __future__ import annotations

import re
from enum import Enum

_SIMPLE_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "b": "\b",
    "f": "\f",
    '"': '"',
    "\\": "\\",
    "/": "/",
}


class _State(Enum):
    SEARCHING = "searching"
    VALUE = "value"
    ESCAPE = "escape"
    UNICODE = "unicode"
    DONE = "done"


class FieldExtractor:
    """
    Streams the decoded value of ``"<field>": "..."`` out of raw JSON text.

    Usage:
        extractor = FieldExtractor("output")
        for fragment in fragments:
            sink.write(extractor.feed(fragment))
    """

    def __init__(self, field: str):
        self.field = field
        self._pattern = re.compile(r'"' + re.escape(field) + r'"\s*:\s*"')
        self._state = _State.SEARCHING
        self._buffer = ""
        self._unicode = ""
        self._high_surrogate: int | None = None
        self._parts: list[str] = []

    @property
    def started(self) -> bool:
        return self._state is not _State.SEARCHING

    @property
    def done(self) -> bool:
        return self._state is _State.DONE

    @property
    def text(self) -> str:
        """Everything extracted so far."""
        return "".join(self._parts)

    def feed(self, chunk: str) -> str:
        """
        Consume a raw fragment.

        Returns:
            Newly decoded value text (possibly empty)
        """
        if self._state is _State.DONE:
            return ""

        if self._state is _State.SEARCHING:
            self._buffer += chunk
            match = self._pattern.search(self._buffer)
            if match is None:
                return ""
            chunk = self._buffer[match.end():]
            self._buffer = ""
            self._state = _State.VALUE

        out: list[str] = []
        for char in chunk:
            if self._state is _State.VALUE:
                if char == "\\":
                    self._state = _State.ESCAPE
                elif char == '"':
                    self._state = _State.DONE
                    break
                else:
                    out.append(char)
            elif self._state is _State.ESCAPE:
                if char == "u":
                    self._unicode = ""
                    self._state = _State.UNICODE
                else:
                    out.append(_SIMPLE_ESCAPES.get(char, char))
                    self._state = _State.VALUE
            elif self._state is _State.UNICODE:
                self._unicode += char
                if len(self._unicode) == 4:
                    self._state = _State.VALUE
                    decoded = self._decode_unit(self._unicode)
                    if decoded:
                        out.append(decoded)

        text = "".join(out)
        if text:
            self._parts.append(text)
        return text

    def _decode_unit(self, digits: str) -> str:
        try:
            unit = int(digits, 16)
        except ValueError:
            # Not a real \u escape: pass the characters through
            return "u" + digits

        if 0xD800 <= unit < 0xDC00:
            self._high_surrogate = unit
            return ""
        if 0xDC00 <= unit < 0xE000 and self._high_surrogate is not None:
            high, self._high_surrogate = self._high_surrogate, None
            return chr(0x10000 + ((high - 0xD800) << 10) + (unit - 0xDC00))
        self._high_surrogate = None
        return chr(unit)


__all__ = ["FieldExtractor"]

"""
Chunk-safe output translation.

Model text may contain escaped-byte tokens such as ``\\x1b[32m`` written
out literally, and it arrives in arbitrary fragments: a token can be
split as ``\\x1`` + ``b[32m``. The translator holds back any suffix that
could be the start of a token until more text arrives (or ``flush()``),
turns complete tokens into raw bytes, encodes everything else as UTF-8,
and converts bare ``\\n`` to the ``\\r\\n`` a raw terminal needs.
"""

from __future__ import annotations

import re

_TOKEN = re.compile(r"\\x([0-9a-fA-F]{2})")
_PARTIAL_TOKEN = re.compile(r"(\\x[0-9a-fA-F]?|\\)$")


class OutputTranslator:
    """Stateful text-to-terminal-bytes translator for one output stream."""

    def __init__(self, newline: bytes = b"\r\n"):
        self.newline = newline
        self._pending = ""
        self._last_byte: int | None = None

    @property
    def pending(self) -> str:
        return self._pending

    def feed(self, chunk: str) -> bytes:
        """Translate ``chunk``, holding back a possible partial token."""
        text = self._pending + chunk
        self._pending = ""
        partial = _PARTIAL_TOKEN.search(text)
        if partial:
            self._pending = partial.group(0)
            text = text[: partial.start()]
        return self._translate(text)

    def flush(self) -> bytes:
        """Emit anything held back, as literal text."""
        text, self._pending = self._pending, ""
        return self._translate(text)

    def _translate(self, text: str) -> bytes:
        if not text:
            return b""
        out = bytearray()
        position = 0
        for match in _TOKEN.finditer(text):
            out += self._encode(text[position:match.start()])
            out.append(int(match.group(1), 16))
            position = match.end()
        out += self._encode(text[position:])
        data = self._newlines(bytes(out))
        if data:
            self._last_byte = data[-1]
        return data

    @staticmethod
    def _encode(text: str) -> bytes:
        return text.encode("utf-8", errors="replace")

    def _newlines(self, data: bytes) -> bytes:
        out = bytearray()
        previous = self._last_byte
        for byte in data:
            if byte == 0x0A and previous != 0x0D:
                out += self.newline
            else:
                out.append(byte)
            previous = byte
        return bytes(out)


__all__ = ["OutputTranslator"]

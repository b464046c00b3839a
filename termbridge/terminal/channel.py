"""Output side of a connection: text in, translated bytes to the transport."""

from __future__ import annotations

import asyncio
from typing import Protocol

from .telnet import escape_iac
from .translator import OutputTranslator


class TerminalSink(Protocol):
    """Where decoders and sessions send operator-visible text."""

    def write(self, text: str) -> None: ...

    def flush(self) -> None: ...

    def ensure_newline(self) -> None: ...

    async def drain(self) -> None: ...


class TerminalChannel:
    """
    TerminalSink backed by an asyncio StreamWriter.

    Text goes through an OutputTranslator; raw bytes (echo, negotiation)
    bypass it. Writes are buffered by the transport and ``drain()``
    applies backpressure to this connection only.
    """

    def __init__(self, writer: asyncio.StreamWriter, telnet: bool = True):
        self.writer = writer
        self.telnet = telnet
        self.translator = OutputTranslator()
        self._at_line_start = True

    @property
    def closed(self) -> bool:
        return self.writer.is_closing()

    def write(self, text: str) -> None:
        if not text:
            return
        self._at_line_start = text.endswith("\n")
        self._send(self.translator.feed(text))

    def flush(self) -> None:
        self._send(self.translator.flush())

    def ensure_newline(self) -> None:
        """Start a fresh line unless the cursor is already at column zero."""
        self.flush()
        if not self._at_line_start:
            self.write("\n")

    def write_raw(self, data: bytes) -> None:
        """Write bytes as-is (no translation, no IAC escaping)."""
        if data and not self.closed:
            self._at_line_start = data.endswith(b"\n")
            self.writer.write(data)

    async def drain(self) -> None:
        if not self.closed:
            await self.writer.drain()

    def _send(self, data: bytes) -> None:
        if not data or self.closed:
            return
        if self.telnet:
            data = escape_iac(data)
        self.writer.write(data)


__all__ = ["TerminalChannel", "TerminalSink"]

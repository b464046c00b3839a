"""
Per-connection line editing over a raw byte stream.

The client runs in character mode, so the bridge does its own echo,
backspace handling and line assembly. ``LineEditor.feed`` turns raw
input bytes into a list of events for the connection handler to act on.
"""

from __future__ import annotations

import codecs
from dataclasses import dataclass
from enum import Enum

ETX = 0x03  # ^C
EOT = 0x04  # ^D
BS = 0x08
LF = 0x0A
CR = 0x0D
NUL = 0x00
DEL = 0x7F

ERASE = b"\b \b"
NEWLINE = b"\r\n"


class EditorAction(Enum):
    """What the connection should do in response to input."""

    ECHO = "echo"  # write ``data`` back to the client
    SUBMIT = "submit"  # ``line`` was entered
    INTERRUPT = "interrupt"  # line cleared, reprint the prompt
    END = "end"  # end of transmission, close the connection


@dataclass
class EditorEvent:
    action: EditorAction
    data: bytes = b""
    line: str = ""


class LineEditor:
    """
    Byte-at-a-time line editor.

    - ETX clears the line and reports an interrupt
    - EOT reports end of transmission; later bytes are ignored
    - BS/DEL erase one character
    - CR or LF submit the line (LF or NUL right after CR is swallowed)
    - other control characters are discarded
    - printable characters (UTF-8 aware) are buffered and echoed
    """

    def __init__(self) -> None:
        self._chars: list[str] = []
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="ignore")
        self._after_cr = False
        self._ended = False

    @property
    def buffer(self) -> str:
        return "".join(self._chars)

    def clear(self) -> None:
        self._chars.clear()
        self._decoder.reset()

    def feed(self, data: bytes) -> list[EditorEvent]:
        events: list[EditorEvent] = []
        for byte in data:
            if self._ended:
                break
            after_cr, self._after_cr = self._after_cr, False

            if byte == ETX:
                self.clear()
                events.append(EditorEvent(EditorAction.ECHO, b"^C" + NEWLINE))
                events.append(EditorEvent(EditorAction.INTERRUPT))
            elif byte == EOT:
                self._ended = True
                events.append(EditorEvent(EditorAction.END))
            elif byte in (BS, DEL):
                if self._chars:
                    self._chars.pop()
                    events.append(EditorEvent(EditorAction.ECHO, ERASE))
            elif byte in (CR, LF, NUL):
                if after_cr and byte in (LF, NUL):
                    continue
                if byte == NUL:
                    continue
                self._after_cr = byte == CR
                line = self.buffer
                self.clear()
                events.append(EditorEvent(EditorAction.ECHO, NEWLINE))
                events.append(EditorEvent(EditorAction.SUBMIT, line=line))
            elif byte < 0x20:
                continue
            else:
                for char in self._decoder.decode(bytes([byte])):
                    if char.isprintable():
                        self._chars.append(char)
                        events.append(EditorEvent(EditorAction.ECHO, char.encode("utf-8")))
        return _coalesce(events)


def _coalesce(events: list[EditorEvent]) -> list[EditorEvent]:
    """Merge runs of adjacent echo events into one write."""
    merged: list[EditorEvent] = []
    for event in events:
        if (
            event.action is EditorAction.ECHO
            and merged
            and merged[-1].action is EditorAction.ECHO
        ):
            merged[-1] = EditorEvent(EditorAction.ECHO, merged[-1].data + event.data)
        else:
            merged.append(event)
    return merged


__all__ = ["EditorAction", "EditorEvent", "LineEditor"]

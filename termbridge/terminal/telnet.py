"""
Telnet negotiation handling.

The bridge speaks raw bytes to a telnet (or netcat) client. Negotiation
sequences must be stripped from input before the line editor sees the
stream, and they can be split across reads, so the filter is stateful.
"""

from __future__ import annotations

from enum import Enum

IAC = 0xFF
DONT = 0xFE
DO = 0xFD
WONT = 0xFC
WILL = 0xFB
SB = 0xFA
SE = 0xF0

OPT_ECHO = 0x01
OPT_SUPPRESS_GO_AHEAD = 0x03

# Server echoes and runs in character mode
NEGOTIATION = bytes([IAC, WILL, OPT_ECHO, IAC, WILL, OPT_SUPPRESS_GO_AHEAD])


class _State(Enum):
    DATA = "data"
    IAC = "iac"
    OPTION = "option"
    SUBNEG = "subneg"
    SUBNEG_IAC = "subneg_iac"


class TelnetFilter:
    """Strips IAC command sequences from an input byte stream."""

    def __init__(self) -> None:
        self._state = _State.DATA

    def feed(self, data: bytes) -> bytes:
        """Return the data bytes of ``data`` with negotiation removed."""
        out = bytearray()
        for byte in data:
            if self._state is _State.DATA:
                if byte == IAC:
                    self._state = _State.IAC
                else:
                    out.append(byte)
            elif self._state is _State.IAC:
                if byte == IAC:
                    out.append(IAC)
                    self._state = _State.DATA
                elif byte in (WILL, WONT, DO, DONT):
                    self._state = _State.OPTION
                elif byte == SB:
                    self._state = _State.SUBNEG
                else:
                    # two-byte command (NOP, GA, AYT, ...)
                    self._state = _State.DATA
            elif self._state is _State.OPTION:
                self._state = _State.DATA
            elif self._state is _State.SUBNEG:
                if byte == IAC:
                    self._state = _State.SUBNEG_IAC
            elif self._state is _State.SUBNEG_IAC:
                self._state = _State.DATA if byte == SE else _State.SUBNEG
        return bytes(out)


def escape_iac(data: bytes) -> bytes:
    """Double 0xFF data bytes so the client does not read them as commands."""
    return data.replace(bytes([IAC]), bytes([IAC, IAC]))


__all__ = ["NEGOTIATION", "TelnetFilter", "escape_iac"]

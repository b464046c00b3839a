"""Raw terminal I/O: telnet filtering, line editing, output translation."""

from .channel import TerminalChannel, TerminalSink
from .line_editor import EditorAction, EditorEvent, LineEditor
from .telnet import NEGOTIATION, TelnetFilter, escape_iac
from .translator import OutputTranslator

__all__ = [
    "EditorAction",
    "EditorEvent",
    "LineEditor",
    "NEGOTIATION",
    "OutputTranslator",
    "TelnetFilter",
    "TerminalChannel",
    "TerminalSink",
    "escape_iac",
]

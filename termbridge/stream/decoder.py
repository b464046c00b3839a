"""
Stream decoders: model service events in, applied calls and output out.

All three decoders consume the same provider-neutral event stream
(block start / delta / stop) and differ only in what a block means:

- TextDecoder: text deltas are the visible output (whole-message mode)
- FieldDecoder: one forced call; its single string field is extracted
  and shown while it streams (single-field mode)
- CallDecoder: any number of calls; each is parsed, validated, applied
  to the state store and rendered when its block closes (multi-call mode)

Calls are applied strictly in block-close order, one at a time.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import AsyncIterable

from ..errors import DecodeError
from ..renderers import render_call
from ..schemas import TERMINAL_OUTPUT_FIELD, TerminalOutput, decode_call
from ..state import StateStore
from ..terminal.channel import TerminalSink
from ..types import BridgeMode, CallKind, StreamEvent, StreamEventType, StructuredCall, TurnResult
from .field_extractor import FieldExtractor

logger = logging.getLogger(__name__)


def apply_to_state(store: StateStore, call: StructuredCall) -> None:
    """Record what a call establishes as fact about the session."""
    args = call.arguments
    if call.kind == CallKind.FILE_LISTING:
        store.record_listing(args.cwd, args.entries)
    elif call.kind == CallKind.FILE_CONTENT:
        store.record_content(args.path, args.content, args.language)
    elif call.kind == CallKind.STATE_UPDATE:
        store.apply_mutation_batch(args)


def diagnostic(error: DecodeError) -> str:
    return f"[decode error: {error}]\n"


@dataclass
class _OpenBlock:
    name: str | None
    call_id: str
    parts: list[str] = field(default_factory=list)

    @property
    def is_text(self) -> bool:
        return self.name is None

    @property
    def raw(self) -> str:
        return "".join(self.parts)


class StreamDecoder(ABC):
    """
    Base decoder: tracks open blocks and passes plain text through.

    Subclasses decide what happens to call blocks.
    """

    def __init__(self, sink: TerminalSink):
        self.sink = sink
        self._blocks: dict[int, _OpenBlock] = {}
        # readable after a mid-stream failure
        self.result = TurnResult()

    async def decode(self, events: AsyncIterable[StreamEvent]) -> TurnResult:
        """
        Consume a whole turn's event stream.

        Returns:
            TurnResult with applied calls, streamed text and decode failures
        """
        result = self.result
        async for event in events:
            self._handle(event, result)
            await self.sink.drain()
        for index in sorted(self._blocks):
            self._abandon(index, self._blocks[index], result)
        self._blocks.clear()
        self.sink.flush()
        return result

    def _handle(self, event: StreamEvent, result: TurnResult) -> None:
        if event.type is StreamEventType.BLOCK_START:
            block = _OpenBlock(name=event.name, call_id=event.call_id or f"call_{event.index}")
            self._blocks[event.index] = block
            self.on_start(event.index, block)
            return

        block = self._blocks.get(event.index)
        if block is None:
            logger.debug(f"Ignoring {event.type.value} for unknown block {event.index}")
            return

        if event.type is StreamEventType.BLOCK_DELTA:
            if block.is_text:
                self.sink.write(event.text)
                result.text += event.text
            else:
                block.parts.append(event.text)
                self.on_delta(block, event.text)
        elif event.type is StreamEventType.BLOCK_STOP:
            del self._blocks[event.index]
            if not block.is_text:
                self.on_stop(block, result)

    def on_start(self, index: int, block: _OpenBlock) -> None:
        pass

    def on_delta(self, block: _OpenBlock, text: str) -> None:
        pass

    @abstractmethod
    def on_stop(self, block: _OpenBlock, result: TurnResult) -> None:
        """A call block closed with its full raw payload."""

    def _abandon(self, index: int, block: _OpenBlock, result: TurnResult) -> None:
        if block.is_text:
            return
        self._report(DecodeError(block.name or "?", "stream ended before the call was complete"), result)

    def salvage(self) -> TurnResult:
        """
        Close out a stream that failed mid-turn.

        Open blocks are dropped without diagnostics; subclasses keep what
        the operator has already seen.
        """
        self._blocks.clear()
        return self.result

    def _report(self, error: DecodeError, result: TurnResult) -> None:
        """Show a decode failure on its own line and record it."""
        logger.warning(f"Discarding call: {error}")
        self.sink.ensure_newline()
        self.sink.write(diagnostic(error))
        result.failures.append(str(error))


class TextDecoder(StreamDecoder):
    """Whole-message mode: only text blocks carry meaning."""

    def on_stop(self, block: _OpenBlock, result: TurnResult) -> None:
        logger.debug(f"Ignoring {block.name} call in text mode")


class FieldDecoder(StreamDecoder):
    """
    Single-field mode.

    The value of the designated field is shown character by character as
    it streams. When the block closes the full envelope is parsed; if it
    does not parse, or the stream ends or fails first, the text already
    shown is kept as the recorded call, since the operator has seen it.
    """

    def __init__(self, sink: TerminalSink, field_name: str = TERMINAL_OUTPUT_FIELD):
        super().__init__(sink)
        self.field_name = field_name
        self._extractors: dict[str, FieldExtractor] = {}

    def on_start(self, index: int, block: _OpenBlock) -> None:
        if not block.is_text:
            self._extractors[block.call_id] = FieldExtractor(self.field_name)

    def on_delta(self, block: _OpenBlock, text: str) -> None:
        shown = self._extractors[block.call_id].feed(text)
        if shown:
            self.sink.write(shown)

    def on_stop(self, block: _OpenBlock, result: TurnResult) -> None:
        extractor = self._extractors.pop(block.call_id)
        shown = extractor.text
        try:
            call = decode_call(block.name, block.call_id, block.raw)
        except DecodeError as e:
            self._report(e, result)
            self._keep_shown(block.call_id, shown, result)
            return

        value = getattr(call.arguments, self.field_name, "")
        if value.startswith(shown) and len(value) > len(shown):
            # Extraction missed part of the value (odd envelope layout)
            self.sink.write(value[len(shown):])
        result.text += value
        result.calls.append(call)

    def _abandon(self, index: int, block: _OpenBlock, result: TurnResult) -> None:
        super()._abandon(index, block, result)
        extractor = self._extractors.pop(block.call_id, None)
        if extractor is not None:
            self._keep_shown(block.call_id, extractor.text, result)

    def salvage(self) -> TurnResult:
        for index in sorted(self._blocks):
            extractor = self._extractors.pop(self._blocks[index].call_id, None)
            if extractor is not None:
                self._keep_shown(self._blocks[index].call_id, extractor.text, self.result)
        return super().salvage()

    @staticmethod
    def _keep_shown(call_id: str, shown: str, result: TurnResult) -> None:
        if shown:
            result.calls.append(StructuredCall(CallKind.TERMINAL_OUTPUT, call_id, TerminalOutput(output=shown)))


class CallDecoder(StreamDecoder):
    """Multi-call mode: parse, validate, apply and render each closed block."""

    def __init__(self, sink: TerminalSink, store: StateStore):
        super().__init__(sink)
        self.store = store

    def on_stop(self, block: _OpenBlock, result: TurnResult) -> None:
        try:
            call = decode_call(block.name, block.call_id, block.raw)
        except DecodeError as e:
            self._report(e, result)
            return

        apply_to_state(self.store, call)
        rendered = render_call(call)
        if rendered:
            self.sink.write(rendered + "\n")
        result.calls.append(call)


def make_decoder(mode: BridgeMode, sink: TerminalSink, store: StateStore) -> StreamDecoder:
    """Decoder for a bridge mode."""
    if mode is BridgeMode.TEXT:
        return TextDecoder(sink)
    if mode is BridgeMode.FIELD:
        return FieldDecoder(sink)
    return CallDecoder(sink, store)


__all__ = [
    "CallDecoder",
    "FieldDecoder",
    "StreamDecoder",
    "TextDecoder",
    "apply_to_state",
    "make_decoder",
]

"""
Unit tests for the stream decoders.

Events are scripted the way the model service adapters produce them:
block start, argument fragments, block stop.
"""

from typing import AsyncIterator

import pytest

from conftest import RecordingSink, call_events, text_events
from termbridge.errors import ServiceError
from termbridge.renderers import render_tool_call
from termbridge.schemas import decode_arguments
from termbridge.state import StateStore
from termbridge.stream import CallDecoder, FieldDecoder, TextDecoder, make_decoder
from termbridge.types import BridgeMode, CallKind, StreamEvent


async def events_of(*groups) -> AsyncIterator[StreamEvent]:
    for group in groups:
        for event in group:
            yield event


class TestTextDecoder:
    """Tests for whole-message mode."""

    @pytest.mark.asyncio
    async def test_text_is_written_as_it_arrives(self, sink: RecordingSink):
        decoder = TextDecoder(sink)

        result = await decoder.decode(events_of(text_events(0, "total 0", "\n")))

        assert sink.parts == ["total 0", "\n"]
        assert result.text == "total 0\n"
        assert result.calls == []

    @pytest.mark.asyncio
    async def test_call_blocks_are_ignored(self, sink: RecordingSink):
        decoder = TextDecoder(sink)

        result = await decoder.decode(events_of(call_events(0, "remark", {"text": "hi"})))

        assert sink.text == ""
        assert result.calls == []


class TestFieldDecoder:
    """Tests for single-field mode."""

    @pytest.mark.asyncio
    async def test_streams_field_value(self, sink: RecordingSink):
        decoder = FieldDecoder(sink)

        result = await decoder.decode(
            events_of(call_events(0, "terminal_output", {"output": "uid=0(root)\n"}, chunk=3))
        )

        assert sink.text == "uid=0(root)\n"
        # shown incrementally, not in one write
        assert len(sink.parts) > 1
        assert result.text == "uid=0(root)\n"
        assert [c.kind for c in result.calls] == [CallKind.TERMINAL_OUTPUT]
        assert result.failures == []

    @pytest.mark.asyncio
    async def test_malformed_envelope_keeps_shown_text(self, sink: RecordingSink):
        decoder = FieldDecoder(sink)

        result = await decoder.decode(events_of(call_events(0, "terminal_output", '{"output": "partial out')))

        assert sink.text.startswith("partial out")
        assert "[decode error: terminal_output: invalid JSON" in sink.text
        assert result.calls[0].arguments.output == "partial out"
        assert len(result.failures) == 1

    @pytest.mark.asyncio
    async def test_stream_cut_mid_call(self, sink: RecordingSink):
        decoder = FieldDecoder(sink)
        events = call_events(0, "terminal_output", {"output": "abc"})[:-1]

        result = await decoder.decode(events_of(events))

        assert "stream ended before the call was complete" in sink.text
        assert result.failures
        assert [call.arguments.output for call in result.calls] == ["abc"]
        assert result.calls[0].kind is CallKind.TERMINAL_OUTPUT

    @pytest.mark.asyncio
    async def test_cut_before_any_output_records_nothing(self, sink: RecordingSink):
        decoder = FieldDecoder(sink)
        events = call_events(0, "terminal_output", {"output": "abc"}, chunk=4)[:2]

        result = await decoder.decode(events_of(events))

        assert result.failures
        assert result.calls == []

    @pytest.mark.asyncio
    async def test_salvage_keeps_shown_text_after_failure(self, sink: RecordingSink):
        decoder = FieldDecoder(sink)

        async def failing():
            for event in call_events(0, "terminal_output", {"output": "hello world"}, chunk=5)[:-2]:
                yield event
            raise ServiceError("dropped")

        with pytest.raises(ServiceError):
            await decoder.decode(failing())
        result = decoder.salvage()

        assert sink.text.startswith("hello")
        assert len(result.calls) == 1
        assert sink.text == result.calls[0].arguments.output
        assert result.failures == []


class TestCallDecoder:
    """Tests for multi-call mode."""

    @pytest.mark.asyncio
    async def test_listing_is_applied_and_rendered(self, sink: RecordingSink):
        store = StateStore()
        decoder = CallDecoder(sink, store)
        arguments = {"cwd": "/", "entries": [{"name": "etc", "type": "dir"}]}

        result = await decoder.decode(events_of(call_events(0, "file_listing", arguments)))

        assert store.get_node("/etc").is_dir
        expected = decode_arguments("file_listing", arguments)
        assert sink.text == render_tool_call("file_listing", expected.arguments) + "\n"
        assert result.calls[0].call_id == "toolu_0"

    @pytest.mark.asyncio
    async def test_calls_apply_in_close_order(self, sink: RecordingSink):
        store = StateStore()
        decoder = CallDecoder(sink, store)
        first = [StreamEvent.start(0, "state_update", "a"), StreamEvent.start(1, "state_update", "b")]
        deltas = [StreamEvent.delta(1, '{"cwd": "/second"}'), StreamEvent.delta(0, '{"cwd": "/first"}')]
        # block 1 closes before block 0
        stops = [StreamEvent.stop(1), StreamEvent.stop(0)]

        result = await decoder.decode(events_of(first, deltas, stops))

        assert [c.call_id for c in result.calls] == ["b", "a"]
        assert store.cwd == "/first"

    @pytest.mark.asyncio
    async def test_bad_call_does_not_block_others(self, sink: RecordingSink):
        store = StateStore()
        decoder = CallDecoder(sink, store)

        result = await decoder.decode(
            events_of(
                call_events(0, "file_content", {"path": "/etc/motd"}),
                call_events(1, "remark", {"text": "still here"}),
                call_events(2, "file_content", "{not json"),
            )
        )

        assert [c.kind for c in result.calls] == [CallKind.REMARK]
        assert len(result.failures) == 2
        assert sink.text.count("[decode error:") == 2
        assert "still here" in sink.text
        assert store.get_content("/etc/motd") is None

    @pytest.mark.asyncio
    async def test_unknown_call_name_is_a_decode_failure(self, sink: RecordingSink):
        decoder = CallDecoder(sink, StateStore())

        result = await decoder.decode(events_of(call_events(0, "self_destruct", {})))

        assert result.calls == []
        assert "[decode error: self_destruct: unknown call]" in sink.text

    @pytest.mark.asyncio
    async def test_state_update_is_silent(self, sink: RecordingSink):
        store = StateStore()
        decoder = CallDecoder(sink, store)

        await decoder.decode(events_of(call_events(0, "state_update", {"cwd": "/tmp", "env": {"X": "1"}})))

        assert sink.text == ""
        assert store.cwd == "/tmp"
        assert store.environment["X"] == "1"

    @pytest.mark.asyncio
    async def test_content_then_listing_in_one_turn(self, sink: RecordingSink):
        store = StateStore()
        decoder = CallDecoder(sink, store)

        await decoder.decode(
            events_of(
                call_events(0, "file_content", {"path": "/srv/app.py", "content": "pass\n", "language": "python"}),
                call_events(1, "file_listing", {"cwd": "/srv", "entries": [{"name": "app.py", "type": "file"}]}),
            )
        )

        assert store.get_content("/srv/app.py") == "pass\n"
        assert store.get_node("/srv/app.py").language == "python"

    @pytest.mark.asyncio
    async def test_partial_result_readable_after_failure(self, sink: RecordingSink):
        decoder = CallDecoder(sink, StateStore())

        async def failing():
            for event in call_events(0, "remark", {"text": "one"}):
                yield event
            raise RuntimeError("socket closed")

        with pytest.raises(RuntimeError):
            await decoder.decode(failing())

        assert [c.arguments.text for c in decoder.result.calls] == ["one"]


class TestMakeDecoder:
    """Tests for make_decoder()."""

    def test_decoder_per_mode(self, sink: RecordingSink):
        store = StateStore()

        assert isinstance(make_decoder(BridgeMode.TEXT, sink, store), TextDecoder)
        assert isinstance(make_decoder(BridgeMode.FIELD, sink, store), FieldDecoder)
        assert isinstance(make_decoder(BridgeMode.CALLS, sink, store), CallDecoder)

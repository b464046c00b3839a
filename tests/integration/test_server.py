"""
Integration tests for the TCP server.

A real listener on an ephemeral port, real client sockets, and a scripted
model service.
"""

import asyncio

import pytest

from conftest import FakeService, call_events
from termbridge.config import BridgeConfig
from termbridge.errors import ServiceError
from termbridge.server import BridgeServer
from termbridge.terminal import NEGOTIATION

TIMEOUT = 5.0


class GatedService(FakeService):
    """FakeService that holds every turn until ``gate`` is set."""

    def __init__(self, scripts=None):
        super().__init__(scripts)
        self.gate = asyncio.Event()

    async def stream(self, request):
        await self.gate.wait()
        async for event in super().stream(request):
            yield event


def server_config(greeting: str = "", telnet: bool = False) -> BridgeConfig:
    config = BridgeConfig.load(env={"TERMBRIDGE_CONFIG": "/nonexistent/termbridge.json"})
    config.server.host = "127.0.0.1"
    config.server.port = 0
    config.server.telnet = telnet
    config.session.greeting = greeting
    return config


async def start(config: BridgeConfig, service: FakeService) -> BridgeServer:
    server = BridgeServer(config, service, system_prompt="system")
    await server.start()
    return server


async def read_until(reader: asyncio.StreamReader, marker: bytes) -> bytes:
    return await asyncio.wait_for(reader.readuntil(marker), TIMEOUT)


class TestConnection:
    """Single-connection behaviour."""

    @pytest.mark.asyncio
    async def test_prompt_then_turn_output(self):
        service = FakeService([call_events(0, "command_output", {"lines": ["root"]})])
        server = await start(server_config(), service)
        reader, writer = await asyncio.open_connection("127.0.0.1", server.port)
        try:
            assert await read_until(reader, b"/ > ") == b"/ > "

            writer.write(b"whoami\r\n")
            output = await read_until(reader, b"/ > ")

            assert output == b"whoami\r\nroot\r\n/ > "
            assert service.requests[0].turns[-1].text.endswith("whoami")
        finally:
            writer.close()
            await server.close()

    @pytest.mark.asyncio
    async def test_telnet_negotiation_and_greeting(self):
        service = FakeService([call_events(0, "command_output", {"lines": ["Last login: never"]})])
        server = await start(server_config(greeting="[operator connected]", telnet=True), service)
        reader, writer = await asyncio.open_connection("127.0.0.1", server.port)
        try:
            output = await read_until(reader, b"/ > ")

            assert output.startswith(NEGOTIATION)
            assert b"Last login: never\r\n" in output
            assert service.requests[0].turns[0].text.endswith("[operator connected]")
        finally:
            writer.close()
            await server.close()

    @pytest.mark.asyncio
    async def test_local_commands_and_exit(self):
        service = FakeService()
        server = await start(server_config(), service)
        reader, writer = await asyncio.open_connection("127.0.0.1", server.port)
        try:
            await read_until(reader, b"/ > ")

            writer.write(b"cd /var/log\r")
            assert await read_until(reader, b"/var/log > ") == b"cd /var/log\r\n/var/log > "

            writer.write(b"exit\r")
            rest = await asyncio.wait_for(reader.read(), TIMEOUT)

            assert rest == b"exit\r\nConnection closed.\r\n"
            assert service.requests == []
        finally:
            writer.close()
            await server.close()

    @pytest.mark.asyncio
    async def test_ctrl_d_closes(self):
        server = await start(server_config(), FakeService())
        reader, writer = await asyncio.open_connection("127.0.0.1", server.port)
        try:
            await read_until(reader, b"/ > ")

            writer.write(b"\x04")
            rest = await asyncio.wait_for(reader.read(), TIMEOUT)

            assert rest.endswith(b"Connection closed.\r\n")
        finally:
            writer.close()
            await server.close()

    @pytest.mark.asyncio
    async def test_input_during_turn_is_dropped(self):
        service = GatedService([call_events(0, "remark", {"text": "done"})])
        server = await start(server_config(), service)
        reader, writer = await asyncio.open_connection("127.0.0.1", server.port)
        try:
            await read_until(reader, b"/ > ")

            writer.write(b"ls\r")
            await read_until(reader, b"ls\r\n")
            writer.write(b"pwd\r")
            # still echoed while the turn is in flight
            await read_until(reader, b"pwd\r\n")
            service.gate.set()
            output = await read_until(reader, b"/ > ")

            assert b"done" in output
            assert len(service.requests) == 1
        finally:
            writer.close()
            await server.close()

    @pytest.mark.asyncio
    async def test_service_failure_reported(self):
        server = await start(server_config(), FakeService([ServiceError("upstream unavailable")]))
        reader, writer = await asyncio.open_connection("127.0.0.1", server.port)
        try:
            await read_until(reader, b"/ > ")

            writer.write(b"ls\r")
            output = await read_until(reader, b"/ > ")

            assert output == b"ls\r\n[ERROR] upstream unavailable\r\n/ > "
        finally:
            writer.close()
            await server.close()


class TestIsolation:
    """Concurrent connections do not share state."""

    @pytest.mark.asyncio
    async def test_sessions_are_independent(self):
        server = await start(server_config(), FakeService())
        first_reader, first_writer = await asyncio.open_connection("127.0.0.1", server.port)
        second_reader, second_writer = await asyncio.open_connection("127.0.0.1", server.port)
        try:
            await read_until(first_reader, b"/ > ")
            await read_until(second_reader, b"/ > ")

            first_writer.write(b"cd /srv\r")
            await read_until(first_reader, b"/srv > ")
            second_writer.write(b"pwd\r")
            output = await read_until(second_reader, b"/ > ")

            assert output == b"pwd\r\n/\r\n/ > "
        finally:
            first_writer.close()
            second_writer.close()
            await server.close()

"""
Raw TCP server: one independent session per connection.

The bridge does only what a terminal needs: telnet negotiation, echo,
line buffering and output translation. Everything the operator sees
beyond that comes from the model.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Coroutine

from .api_client import ModelService, MultiProviderService
from .config import BridgeConfig
from .prompts import build_system_prompt, load_world
from .session_manager import LineAction, Session
from .terminal import NEGOTIATION, EditorAction, LineEditor, TelnetFilter, TerminalChannel

logger = logging.getLogger(__name__)


class Connection:
    """
    One accepted connection and the session it owns.

    The read loop keeps running while a turn is in flight, so echo and
    line editing stay live and lines submitted mid-turn are dropped by
    the session rather than queued in the socket.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        config: BridgeConfig,
        service: ModelService,
        system_prompt: str,
    ):
        self.reader = reader
        self.writer = writer
        self.config = config
        self.channel = TerminalChannel(writer, telnet=config.server.telnet)
        self.session = Session(config, service, self.channel, system_prompt)
        self.telnet = TelnetFilter() if config.server.telnet else None
        self.editor = LineEditor()
        self._turn: asyncio.Task | None = None

    @property
    def peer(self) -> str:
        peername = self.writer.get_extra_info("peername")
        return f"{peername[0]}:{peername[1]}" if peername else "?"

    async def run(self) -> None:
        logger.info(f"Operator connected from {self.peer}")
        try:
            if self.telnet is not None:
                self.channel.write_raw(NEGOTIATION)
            greeting = self.config.session.greeting
            if greeting and self.session.begin_turn():
                self._start_turn(self.session.run_turn(greeting))
            else:
                self.session.write_prompt()
            await self.channel.drain()

            while True:
                data = await self.reader.read(self.config.server.read_size)
                if not data:
                    break
                if self.handle_input(data):
                    break
                await self.channel.drain()
        except (ConnectionError, OSError) as e:
            logger.info(f"Connection from {self.peer} failed: {e}")
        finally:
            await self.close()

    def handle_input(self, data: bytes) -> bool:
        """
        Process raw client bytes.

        Returns:
            True when the connection should close
        """
        if self.telnet is not None:
            data = self.telnet.feed(data)

        for event in self.editor.feed(data):
            if event.action is EditorAction.ECHO:
                self.channel.write_raw(event.data)
            elif event.action is EditorAction.INTERRUPT:
                # In-flight turns keep running; their output ends with a prompt
                if not self.session.busy:
                    self.session.write_prompt()
            elif event.action is EditorAction.END:
                self.channel.ensure_newline()
                self.channel.write(self.config.session.farewell + "\n")
                self.channel.flush()
                return True
            elif event.action is EditorAction.SUBMIT:
                action = self.session.dispatch(event.line)
                if action is LineAction.CLOSE:
                    return True
                if action is LineAction.TURN:
                    self._start_turn(self.session.run_turn(event.line))
        return False

    def _start_turn(self, turn: Coroutine) -> None:
        self._turn = asyncio.create_task(turn)
        self._turn.add_done_callback(self._turn_done)

    def _turn_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Turn failed for {self.peer}", exc_info=error)

    async def close(self) -> None:
        """Stop consuming the model stream and release the connection."""
        if self._turn is not None and not self._turn.done():
            self._turn.cancel()
            try:
                await self._turn
            except asyncio.CancelledError:
                pass
        if not self.writer.is_closing():
            try:
                await self.writer.drain()
            except (ConnectionError, OSError):
                logger.debug(f"Could not flush final output to {self.peer}")
            self.writer.close()
        try:
            await self.writer.wait_closed()
        except (ConnectionError, OSError):
            logger.debug(f"Unclean close for {self.peer}")
        logger.info(f"Operator disconnected from {self.peer}")


class BridgeServer:
    """
    asyncio TCP server handing each connection a fresh session.

    Usage:
        server = BridgeServer(config, service)
        await server.start()
        await server.serve_forever()
    """

    def __init__(
        self,
        config: BridgeConfig,
        service: ModelService,
        system_prompt: str | None = None,
    ):
        self.config = config
        self.service = service
        self.system_prompt = system_prompt or build_system_prompt(
            config.session.mode,
            load_world(config.session.world_path),
            stateful=config.session.stateful,
        )
        self._server: asyncio.Server | None = None
        self._connections: set[asyncio.Task] = set()

    @property
    def port(self) -> int | None:
        if self._server is None or not self._server.sockets:
            return None
        return self._server.sockets[0].getsockname()[1]

    async def start(self) -> asyncio.Server:
        self._server = await asyncio.start_server(
            self._handle_client,
            host=self.config.server.host,
            port=self.config.server.port,
        )
        logger.info(
            f"Listening on {self.config.server.host}:{self.port} "
            f"(mode={self.config.session.mode.value}, model={self.config.model.model})"
        )
        return self._server

    async def serve_forever(self) -> None:
        if self._server is None:
            await self.start()
        async with self._server:
            await self._server.serve_forever()

    async def close(self) -> None:
        """Stop accepting, then end every open session."""
        if self._server is not None:
            self._server.close()
        tasks = list(self._connections)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        if self._server is not None:
            await self._server.wait_closed()

    async def _handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        task = asyncio.current_task()
        if task is not None:
            self._connections.add(task)
        try:
            connection = Connection(reader, writer, self.config, self.service, self.system_prompt)
            await connection.run()
        finally:
            if task is not None:
                self._connections.discard(task)


async def serve(
    config: BridgeConfig,
    service: ModelService | None = None,
    system_prompt: str | None = None,
) -> None:
    """Run the bridge until cancelled."""
    service = service or MultiProviderService()
    server = BridgeServer(config, service, system_prompt)
    await server.serve_forever()


__all__ = ["BridgeServer", "Connection", "serve"]

"""
Session Manager for termbridge.

Owns one connection's conversation history, virtual state and turn
sequencing. A session is created when a connection is accepted and
discarded when it closes; nothing is shared between sessions.
"""

from __future__ import annotations

import logging
from collections import deque
from enum import Enum
from typing import Iterator

from .api_client import TOOL_CHOICE_ANY, ModelRequest, ModelService
from .config import BridgeConfig
from .errors import ServiceError
from .prompts import wrap_with_snapshot
from .schemas import TERMINAL_OUTPUT_TOOL, ToolSpec, get_tool_specs
from .state import StateStore
from .stream import make_decoder
from .terminal.channel import TerminalSink
from .types import BridgeMode, Turn, TurnResult

logger = logging.getLogger(__name__)

CLEAR_SCREEN = "\x1b[2J\x1b[H"


class ConversationHistory:
    """
    Sliding window of turns.

    Holds at most ``max_turns``; appending beyond that drops the oldest
    turns first, so the window always holds exactly the most recent ones
    in their original order.
    """

    def __init__(self, max_turns: int = 80):
        self.max_turns = max_turns
        self._turns: deque[Turn] = deque(maxlen=max_turns)

    def append(self, turn: Turn) -> None:
        self._turns.append(turn)

    @property
    def turns(self) -> list[Turn]:
        return list(self._turns)

    def clear(self) -> None:
        self._turns.clear()

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[Turn]:
        return iter(list(self._turns))


class SessionStatus(Enum):
    """Turn state machine: IDLE -> AWAITING_MODEL -> IDLE."""

    IDLE = "idle"
    AWAITING_MODEL = "awaiting_model"


class LineAction(Enum):
    """What the connection should do after dispatching a line."""

    IGNORED = "ignored"  # a turn is in flight
    LOCAL = "local"  # handled without the model
    TURN = "turn"  # start ``run_turn(line)``
    CLOSE = "close"  # exit command; farewell already written


class Session:
    """
    One operator session.

    ``dispatch`` is synchronous so the single-flight check and the status
    change happen together; the caller then awaits ``run_turn`` (usually
    as a task) when it returns ``LineAction.TURN``.

    Usage:
        action = session.dispatch(line)
        if action is LineAction.TURN:
            task = asyncio.create_task(session.run_turn(line))
    """

    def __init__(
        self,
        config: BridgeConfig,
        service: ModelService,
        sink: TerminalSink,
        system_prompt: str,
        store: StateStore | None = None,
    ):
        self.config = config
        self.service = service
        self.sink = sink
        self.system_prompt = system_prompt
        self.store = store or StateStore()
        self.history = ConversationHistory(config.session.history_window)
        self.status = SessionStatus.IDLE

    @property
    def mode(self) -> BridgeMode:
        return self.config.session.mode

    @property
    def busy(self) -> bool:
        return self.status is SessionStatus.AWAITING_MODEL

    # -- prompt ---------------------------------------------------------------

    def prompt(self) -> str:
        return self.config.session.prompt_template.format(cwd=self.store.cwd)

    def write_prompt(self) -> None:
        self.sink.write(self.prompt())
        self.sink.flush()

    # -- dispatch ---------------------------------------------------------------

    def begin_turn(self) -> bool:
        """Claim the single in-flight slot. False if a turn is already running."""
        if self.busy:
            return False
        self.status = SessionStatus.AWAITING_MODEL
        return True

    def dispatch(self, line: str) -> LineAction:
        """
        Route one submitted line.

        While a turn is in flight every line is dropped: nothing is queued
        and neither state nor history changes.
        """
        if self.busy:
            logger.debug("Dropping input while a turn is in flight")
            return LineAction.IGNORED

        action = self._handle_local(line.strip())
        if action is not None:
            return action

        self.begin_turn()
        return LineAction.TURN

    def _handle_local(self, command: str) -> LineAction | None:
        """Commands answered without a model round-trip. Never recorded in history."""
        name, _, argument = command.partition(" ")
        argument = argument.strip()
        session_config = self.config.session

        if name in session_config.exit_commands:
            self.sink.ensure_newline()
            self.sink.write(session_config.farewell + "\n")
            self.sink.flush()
            return LineAction.CLOSE

        if not command:
            self.write_prompt()
            return LineAction.LOCAL

        if command == "clear":
            self.sink.write(CLEAR_SCREEN)
            self.write_prompt()
            return LineAction.LOCAL

        # Directory commands are only local when snapshots keep the model in sync
        if session_config.stateful:
            if command == "pwd":
                self.sink.write(self.store.cwd + "\n")
                self.write_prompt()
                return LineAction.LOCAL
            if name == "cd":
                self.store.set_cwd(argument or "~")
                self.write_prompt()
                return LineAction.LOCAL

        return None

    # -- turns ------------------------------------------------------------------

    def _tools(self) -> tuple[list[ToolSpec], str | None]:
        if self.mode is BridgeMode.TEXT:
            return [], None
        if self.mode is BridgeMode.FIELD:
            return [TERMINAL_OUTPUT_TOOL], TERMINAL_OUTPUT_TOOL.name
        return get_tool_specs(self.config.session.enabled_tools), TOOL_CHOICE_ANY

    def build_request(self) -> ModelRequest:
        tools, tool_choice = self._tools()
        model_config = self.config.model
        return ModelRequest(
            system=self.system_prompt,
            turns=self.history.turns,
            tools=tools,
            tool_choice=tool_choice,
            model=model_config.model,
            max_tokens=model_config.max_tokens,
            temperature=model_config.temperature,
        )

    async def run_turn(self, line: str) -> TurnResult | None:
        """
        Send one operator line to the model and apply the response.

        Call after ``dispatch`` returned TURN or ``begin_turn`` succeeded.
        Service failures are reported to the operator as one ``[ERROR]``
        line; the session stays usable.

        Returns:
            The decoded turn, or None if the service failed
        """
        try:
            text = line.strip()
            if self.config.session.stateful:
                text = wrap_with_snapshot(text, self.store.serialize())
            self.history.append(Turn.operator(text))

            decoder = make_decoder(self.mode, self.sink, self.store)
            result: TurnResult | None
            try:
                result = await decoder.decode(self.service.stream(self.build_request()))
            except ServiceError as e:
                logger.warning(f"Model service failed: {e}")
                # calls applied before the failure are still facts
                self._record(decoder.salvage())
                self.sink.ensure_newline()
                self.sink.write(f"[ERROR] {e}\n")
                result = None
            else:
                self._record(result)

            self.sink.ensure_newline()
            self.write_prompt()
            await self.sink.drain()
            return result
        finally:
            self.status = SessionStatus.IDLE

    def _record(self, result: TurnResult) -> None:
        """Append the model's turn and, for calls, the synthetic acknowledgement."""
        if self.mode is BridgeMode.TEXT:
            if result.text:
                self.history.append(Turn.model_text(result.text))
            return
        if result.calls:
            self.history.append(Turn.model_calls(result.calls))
            self.history.append(Turn.acknowledgement(result.calls))


__all__ = ["ConversationHistory", "LineAction", "Session", "SessionStatus"]

"""termbridge: a model-driven remote terminal.

Operators connect over raw TCP (telnet or netcat) and type commands; a
language model plays the machine. The bridge keeps the illusion
consistent across a session:

- State: a virtual filesystem and environment built from what the model
  has already shown, serialized into every request
- Schemas: typed tool calls for listings, file contents, process tables,
  status panels and state mutations
- Stream: decoders that show output while the model is still generating
- Terminal: telnet filtering, echo, line editing and CRLF translation
"""

__version__ = "0.1.0"

# Session
from .session_manager import ConversationHistory, LineAction, Session
from .server import BridgeServer, serve

# State & schemas
from .state import StateStore, VirtualNode, resolve_path
from .schemas import REGISTRY, ToolSpec, decode_call, get_tool_specs
from .renderers import render_call, render_tool_call

# Model service
from .api_client import (
    AnthropicService,
    ModelRequest,
    ModelService,
    MultiProviderService,
    OpenAIService,
)

# Types & config
from .types import BridgeMode, CallKind, StreamEvent, StructuredCall, Turn, TurnResult
from .errors import BridgeError, ConfigError, DecodeError, ServiceError
from .config import BridgeConfig, default_config

__all__ = [
    # Session
    "BridgeServer",
    "ConversationHistory",
    "LineAction",
    "Session",
    "serve",
    # State & schemas
    "REGISTRY",
    "StateStore",
    "ToolSpec",
    "VirtualNode",
    "decode_call",
    "get_tool_specs",
    "render_call",
    "render_tool_call",
    "resolve_path",
    # Model service
    "AnthropicService",
    "ModelRequest",
    "ModelService",
    "MultiProviderService",
    "OpenAIService",
    # Types & config
    "BridgeConfig",
    "BridgeError",
    "BridgeMode",
    "CallKind",
    "ConfigError",
    "DecodeError",
    "ServiceError",
    "StreamEvent",
    "StructuredCall",
    "Turn",
    "TurnResult",
    "default_config",
]

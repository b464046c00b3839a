"""
Command-line entry point.

Examples:
    # Listen on the default port with settings from ./termbridge.json
    termbridge

    # Whole-message mode on a custom port, no telnet negotiation
    termbridge --mode text --port 4000 --no-telnet

    # Print the effective configuration and exit
    termbridge --show-config
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from .api_client import MultiProviderService
from .config import BridgeConfig, load_environment
from .errors import ConfigError
from .prompts import build_system_prompt, load_world
from .server import serve
from .types import BridgeMode

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="termbridge",
        description="Serve a model-driven remote terminal over raw TCP",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Connect with:
    telnet localhost 2222
    nc localhost 2222        (with --no-telnet)
        """,
    )
    parser.add_argument("--config", "-c", type=Path, help="Config file (default: ./termbridge.json)")
    parser.add_argument("--host", help="Listen address")
    parser.add_argument("--port", "-p", type=int, help="Listen port")
    parser.add_argument(
        "--mode",
        "-m",
        choices=[mode.value for mode in BridgeMode],
        help="How the model responds: text, field or calls",
    )
    parser.add_argument("--model", help="Model name or alias (sonnet, opus, haiku, gpt-4o, ...)")
    parser.add_argument("--stateless", action="store_true", help="Do not send state snapshots")
    parser.add_argument("--no-telnet", action="store_true", help="Plain byte stream, no telnet negotiation")
    parser.add_argument("--world", type=Path, help="Text file describing the simulated machine")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    parser.add_argument("--show-config", action="store_true", help="Print effective config and exit")
    return parser


def apply_args(config: BridgeConfig, args: argparse.Namespace) -> BridgeConfig:
    """Apply command-line overrides, the highest-priority source."""
    if args.host:
        config.server.host = args.host
    if args.port is not None:
        config.server.port = args.port
    if args.mode:
        config.session.mode = BridgeMode(args.mode)
    if args.model:
        config.model.model = args.model
    if args.stateless:
        config.session.stateful = False
    if args.no_telnet:
        config.server.telnet = False
    if args.world:
        config.session.world_path = str(args.world)
    return config


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    load_environment()

    try:
        config = apply_args(BridgeConfig.load(args.config), args)
        system_prompt = build_system_prompt(
            config.session.mode,
            load_world(config.session.world_path),
            stateful=config.session.stateful,
        )
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    if args.show_config:
        print(json.dumps(config.to_dict(), indent=2))
        return 0

    try:
        service = MultiProviderService()
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        asyncio.run(serve(config, service, system_prompt))
    except KeyboardInterrupt:
        logger.info("Shutting down")
    except OSError as e:
        print(f"Error: could not listen on {config.server.host}:{config.server.port}: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())

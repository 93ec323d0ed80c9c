"""
Gemini Bridge CLI — runs the MCP stdio server.

Usage:
    python -m gemini_bridge [--config PATH] [--log-level LEVEL] [--log-file PATH]
    gemini-mcp --version

stdout carries the MCP protocol, so logs go to stderr or to --log-file.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import Optional, Sequence

from gemini_bridge.core.config import BridgeConfig, load_config
from gemini_bridge.mcp.executor import terminate_active_invocations
from gemini_bridge.mcp.router import RequestRouter
from gemini_bridge.mcp.server import McpServer
from gemini_bridge.version import __version__

logger = logging.getLogger("GeminiBridge")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    if log_file:
        logging.basicConfig(
            level=numeric_level,
            format=LOG_FORMAT,
            filename=log_file,
            filemode="a",
        )
    else:
        logging.basicConfig(level=numeric_level, format=LOG_FORMAT, stream=sys.stderr)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gemini-mcp",
        description="Expose the authenticated gemini CLI as an MCP tool over stdio.",
    )
    parser.add_argument("--config", help="YAML config file (overrides GEMINI_MCP_CONFIG)")
    parser.add_argument("--log-level", help="Logging level (default: GEMINI_MCP_LOG_LEVEL or INFO)")
    parser.add_argument("--log-file", help="Append logs to this file instead of stderr")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def build_server(config: BridgeConfig) -> McpServer:
    router = RequestRouter(config)
    return McpServer(
        router.dispatch_rpc_message,
        max_workers=config.dispatch_max_workers,
        queue_limit=config.effective_queue_limit,
        should_background=router.should_dispatch_in_background,
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _build_parser().parse_args(argv)

    if args.config:
        config = BridgeConfig.from_yaml(args.config)
    else:
        config = load_config()
    if args.log_level:
        config.log_level = args.log_level
    if args.log_file:
        config.log_file = args.log_file

    configure_logging(config.log_level, config.log_file)
    logger.info(
        "Gemini MCP bridge %s started (pid=%d, gemini=%s, default_model=%s)",
        __version__,
        os.getpid(),
        config.gemini_path,
        config.default_model,
    )

    server = build_server(config)
    try:
        server.serve(sys.stdin.buffer)
    except KeyboardInterrupt:
        # Each gemini child runs in its own session and never sees the
        # terminal's SIGINT, so in-flight calls have to be killed here.
        logger.info("Interrupted; shutting down")
        terminate_active_invocations()
    logger.info("Gemini MCP bridge stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())

import logging
from typing import Any, Callable, Dict, Iterable, Optional

from gemini_bridge.version import __version__ as _BRIDGE_VERSION
from gemini_bridge.core.config import BridgeConfig
from gemini_bridge.core.errors import InvocationError
from gemini_bridge.core.types import ExecutionResult, InvocationRequest

from .definitions import TOOL_NAME, is_known_tool, list_tools
from .executor import run_invocation
from .metrics import McpMetrics
from .normalizer import filter_warnings, normalize
from .protocol import INVALID_PARAMS, SERVER_NAME, JsonRpcError, negotiate_protocol_version
from .state import get_session_state, update_session_state

logger = logging.getLogger("GeminiBridge.mcp.handlers")

InvocationRunner = Callable[[InvocationRequest, BridgeConfig], ExecutionResult]


def text_result(text: str, is_error: bool = False) -> Dict[str, Any]:
    result: Dict[str, Any] = {"content": [{"type": "text", "text": text}]}
    if is_error:
        result["isError"] = True
    return result


def build_initialize_instructions(config: BridgeConfig) -> str:
    return (
        f"Gemini MCP bridge. Call the '{TOOL_NAME}' tool to ask Gemini via the local "
        f"gemini CLI session. Default model: {config.default_model}."
    )


def handle_initialize(params: Dict[str, Any], config: BridgeConfig) -> Dict[str, Any]:
    """Handle protocol negotiation."""
    requested_version = params.get("protocolVersion")
    negotiated_version = negotiate_protocol_version(requested_version)
    if not negotiated_version:
        raise JsonRpcError(INVALID_PARAMS, f"Unsupported protocol version {requested_version}")

    update_session_state(
        negotiated=True,
        protocol_version=negotiated_version,
        client_capabilities=params.get("capabilities") or {},
        client_info=params.get("clientInfo") or {},
    )
    client_info = params.get("clientInfo") or {}
    logger.info(
        "Negotiated protocol %s with client %s",
        negotiated_version,
        client_info.get("name", "unknown") if isinstance(client_info, dict) else "unknown",
    )

    return {
        "protocolVersion": negotiated_version,
        "capabilities": {
            "tools": {
                "listChanged": False
            },
        },
        "serverInfo": {"name": SERVER_NAME, "version": _BRIDGE_VERSION},
        "instructions": build_initialize_instructions(config),
    }


def handle_initialized_notification() -> None:
    if get_session_state().get("negotiated"):
        update_session_state(initialized=True)
        logger.info("Client initialized connection")
    else:
        logger.warning("Ignored notifications/initialized before successful initialize")


def handle_list_tools() -> Dict[str, Any]:
    return {"tools": list_tools()}


def _failure_text(model: str, exc: Exception, noise_patterns: Iterable[str]) -> str:
    diagnostic = ""
    if isinstance(exc, InvocationError):
        # A stderr holding only banners would hide what actually failed.
        diagnostic = filter_warnings(exc.stderr, noise_patterns)
    if not diagnostic:
        diagnostic = str(exc) or exc.__class__.__name__
    return f"Gemini error ({model}): {diagnostic}"


def call_tool(
    name: Any,
    arguments: Dict[str, Any],
    config: BridgeConfig,
    runner: Optional[InvocationRunner] = None,
) -> Dict[str, Any]:
    """
    Run one gemini tool call and package the outcome as a tools/call result.

    Never raises: unknown or malformed tool names and every invocation
    failure come back as `isError` results so one bad call cannot take the
    server down.
    """
    if not is_known_tool(name):
        return text_result(f"Unknown tool: {name}", is_error=True)

    if runner is None:
        runner = run_invocation

    request = InvocationRequest.from_arguments(name, arguments, config.default_model)
    try:
        result = runner(request, config)
        normalized = normalize(result, request.model, config.noise_patterns)
    except InvocationError as e:
        logger.warning("gemini invocation failed (%s): %s", request.model, e)
        return text_result(_failure_text(request.model, e, config.noise_patterns), is_error=True)
    except Exception as e:
        logger.exception("Unexpected failure while calling gemini (%s)", request.model)
        return text_result(_failure_text(request.model, e, config.noise_patterns), is_error=True)

    if normalized.warnings:
        logger.info("gemini stderr warnings (%s): %s", request.model, normalized.warnings)
    return text_result(normalized.render())


def handle_call_tool(
    msg_id: Any,
    params: Dict[str, Any],
    config: BridgeConfig,
    runner: Optional[InvocationRunner] = None,
) -> Dict[str, Any]:
    """Execute the tool named in tools/call params and log telemetry."""
    name = params.get("name")
    arguments = params.get("arguments")
    if not isinstance(arguments, dict):
        if arguments is not None:
            logger.warning("Ignoring non-object tools/call arguments for id=%r", msg_id)
        arguments = {}

    metrics = McpMetrics(msg_id, str(name), model=arguments.get("model") or config.default_model)
    try:
        result = call_tool(name, arguments, config, runner=runner)
        metrics.record_result(result)
        return result
    finally:
        metrics.log_telemetry(config.tool_call_warn_ms)

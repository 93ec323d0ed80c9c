import logging
from typing import Any, Dict, Optional

from gemini_bridge.core.config import BridgeConfig

from .handlers import (
    InvocationRunner,
    handle_call_tool,
    handle_initialize,
    handle_initialized_notification,
    handle_list_tools,
)
from .protocol import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    JsonRpcError,
)

logger = logging.getLogger("GeminiBridge.mcp.router")

BACKGROUND_METHODS = frozenset({"tools/call"})


def result_message(msg_id: Any, result: Dict[str, Any]) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": msg_id, "result": result}


def error_message(msg_id: Any, code: int, message: str) -> Dict[str, Any]:
    return {
        "jsonrpc": "2.0",
        "id": msg_id,
        "error": {
            "code": code,
            "message": message,
        },
    }


class RequestRouter:
    """
    Routes parsed JSON-RPC messages to handlers.

    Conformance notes:
    - Unknown request methods (with id) return -32601.
    - Unknown notifications (no id) are ignored.
    - Tool-level failures are results with isError, never JSON-RPC errors.
    """

    def __init__(self, config: BridgeConfig, runner: Optional[InvocationRunner] = None):
        self.config = config
        self.runner = runner

    def handle(self, method: str, params: Any, msg_id: Any = None) -> Dict[str, Any]:
        """Return the result for a request, or raise JsonRpcError."""
        if params is None:
            params = {}
        if not isinstance(params, dict):
            raise JsonRpcError(INVALID_PARAMS, f"Invalid params: {method} params must be an object")

        if method == "initialize":
            return handle_initialize(params, self.config)
        if method == "ping":
            return {}
        if method == "tools/list":
            return handle_list_tools()
        if method == "tools/call":
            return handle_call_tool(msg_id, params, self.config, runner=self.runner)
        raise JsonRpcError(METHOD_NOT_FOUND, f"Method not found: {method}")

    def handle_notification(self, method: str, params: Any) -> None:
        if method == "notifications/initialized":
            handle_initialized_notification()
            return
        logger.debug("Ignoring notification %s", method)

    def dispatch_rpc_message(self, msg: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Handle one parsed message and return the response to send, if any."""
        msg_id = msg.get("id")
        method = msg.get("method")
        params = msg.get("params")

        if not isinstance(method, str):
            if msg_id is not None:
                return error_message(msg_id, INVALID_REQUEST, "Invalid Request: missing method")
            return None

        if msg_id is None:
            self.handle_notification(method, params)
            return None

        try:
            return result_message(msg_id, self.handle(method, params, msg_id=msg_id))
        except JsonRpcError as e:
            return {"jsonrpc": "2.0", "id": msg_id, "error": e.to_error()}
        except Exception:
            logger.exception("Unexpected error while handling %s", method)
            return error_message(msg_id, INTERNAL_ERROR, "Internal error during request dispatch.")

    @staticmethod
    def should_dispatch_in_background(msg: Dict[str, Any]) -> bool:
        return msg.get("method") in BACKGROUND_METHODS and msg.get("id") is not None

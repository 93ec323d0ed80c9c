import threading
from typing import Any, Dict

from .protocol import SUPPORTED_PROTOCOL_VERSIONS


def _initial_state() -> Dict[str, Any]:
    return {
        "negotiated": False,
        "initialized": False,
        "protocol_version": SUPPORTED_PROTOCOL_VERSIONS[0],
        "client_capabilities": {},
        "client_info": {},
    }


# Global Session State
_SESSION_STATE: Dict[str, Any] = _initial_state()

_SESSION_LOCK = threading.Lock()

# RPC I/O locks
_RPC_WRITE_LOCK = threading.Lock()


def get_session_state() -> Dict[str, Any]:
    return _SESSION_STATE


def update_session_state(**values: Any) -> None:
    with _SESSION_LOCK:
        _SESSION_STATE.update(values)


def reset_session_state() -> None:
    with _SESSION_LOCK:
        _SESSION_STATE.clear()
        _SESSION_STATE.update(_initial_state())

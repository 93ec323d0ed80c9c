"""
Gemini Bridge MCP Protocol Constants
"""

from typing import Any, Optional

SUPPORTED_PROTOCOL_VERSIONS = ("2025-11-25", "2025-06-18", "2024-11-05")
SERVER_NAME = "gemini"

# Standard JSON-RPC Error Codes
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
PARSE_ERROR = -32700

# Bridge Specific Error Codes
SERVER_BUSY = -32001


class JsonRpcError(Exception):
    """Protocol-level failure that becomes a JSON-RPC error object."""

    def __init__(self, code: int, message: str, data: Optional[Any] = None):
        self.code = code
        self.message = message
        self.data = data
        super().__init__(message)

    def to_error(self) -> dict:
        error = {"code": self.code, "message": self.message}
        if self.data is not None:
            error["data"] = self.data
        return error


def negotiate_protocol_version(version: Optional[str]) -> Optional[str]:
    if not version:
        return SUPPORTED_PROTOCOL_VERSIONS[0]
    if version in SUPPORTED_PROTOCOL_VERSIONS:
        return version
    return None

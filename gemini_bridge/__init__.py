"""
Gemini Bridge: the gemini CLI as an MCP tool
"""

from gemini_bridge.core.config import BridgeConfig, load_config
from gemini_bridge.core.errors import InvocationError
from gemini_bridge.version import __version__

__all__ = [
    "__version__",
    "BridgeConfig",
    "load_config",
    "InvocationError",
]

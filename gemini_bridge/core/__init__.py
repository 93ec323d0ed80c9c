from gemini_bridge.core.config import BridgeConfig, load_config
from gemini_bridge.core.errors import (
    ExecutableNotFoundError,
    InvocationError,
    InvocationTimeoutError,
    NonZeroExitError,
    OutputLimitExceededError,
)
from gemini_bridge.core.types import (
    ExecutionResult,
    InvocationRequest,
    NormalizedResponse,
    ToolDescriptor,
)

__all__ = [
    "BridgeConfig",
    "load_config",
    "InvocationError",
    "InvocationTimeoutError",
    "OutputLimitExceededError",
    "NonZeroExitError",
    "ExecutableNotFoundError",
    "ExecutionResult",
    "InvocationRequest",
    "NormalizedResponse",
    "ToolDescriptor",
]

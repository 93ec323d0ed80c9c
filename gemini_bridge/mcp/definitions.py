import copy
from typing import Any, Dict, List

from gemini_bridge.core.config import DEFAULT_MODEL, FAST_MODEL, SUPPORTED_MODELS
from gemini_bridge.core.types import InputSchema, ParameterSpec, ToolDescriptor

TOOL_NAME = "gemini"

GEMINI_TOOL = ToolDescriptor(
    name=TOOL_NAME,
    description=(
        "Ask Gemini (Google's AI) a question. Use this for creative brainstorming, "
        "second opinions on architecture, generating alternative implementations, "
        f"or when you want a different perspective. {DEFAULT_MODEL} is used by default. "
        f"You can also use {FAST_MODEL} for faster/cheaper queries."
    ),
    input_schema=InputSchema(
        properties={
            "prompt": ParameterSpec(
                type="string",
                description="The prompt to send to Gemini",
            ),
            "model": ParameterSpec(
                type="string",
                description=(
                    f"Model to use: {DEFAULT_MODEL} (default, best quality) "
                    f"or {FAST_MODEL} (faster)"
                ),
                enum=list(SUPPORTED_MODELS),
                default=DEFAULT_MODEL,
            ),
            "context": ParameterSpec(
                type="string",
                description="Optional file contents or code context to include with the prompt",
            ),
        },
        required=["prompt"],
    ),
)

TOOLS: tuple = (GEMINI_TOOL,)

TOOLS_SCHEMAS: List[Dict[str, Any]] = [tool.to_wire() for tool in TOOLS]


def list_tools() -> List[Dict[str, Any]]:
    """Return the tool catalog. Callers get a copy, so the catalog never drifts."""
    return copy.deepcopy(TOOLS_SCHEMAS)


def is_known_tool(name: Any) -> bool:
    return any(tool.name == name for tool in TOOLS)

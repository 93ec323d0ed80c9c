"""
Gemini Bridge Core Types
------------------------
Pydantic models shared by the catalog, executor, normalizer and router.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

CONTEXT_SEPARATOR = "\n\n"


class ParameterSpec(BaseModel):
    """One property of a tool input schema."""
    model_config = ConfigDict(frozen=True)

    type: str = "string"
    description: str = ""
    enum: Optional[List[str]] = None
    default: Optional[Any] = None

    def to_schema(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class InputSchema(BaseModel):
    model_config = ConfigDict(frozen=True)

    properties: Dict[str, ParameterSpec] = Field(default_factory=dict)
    required: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _required_names_are_declared(self) -> "InputSchema":
        missing = [name for name in self.required if name not in self.properties]
        if missing:
            raise ValueError(f"required parameters not declared in properties: {missing}")
        return self

    def to_schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {name: spec.to_schema() for name, spec in self.properties.items()},
            "required": list(self.required),
        }


class ToolDescriptor(BaseModel):
    """A single advertised tool. Built once at import time and never mutated."""
    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    input_schema: InputSchema

    def to_wire(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema.to_schema(),
        }


class InvocationRequest(BaseModel):
    tool_name: str
    prompt: str = ""
    model: str
    context: Optional[str] = None

    @classmethod
    def from_arguments(
        cls,
        tool_name: str,
        arguments: Dict[str, Any],
        default_model: str,
    ) -> "InvocationRequest":
        """Build a request from raw tools/call arguments, applying the model default."""
        prompt = arguments.get("prompt")
        context = arguments.get("context")
        return cls(
            tool_name=tool_name,
            prompt="" if prompt is None else str(prompt),
            model=str(arguments.get("model") or default_model),
            context=None if context is None else str(context),
        )

    @property
    def full_prompt(self) -> str:
        if self.context:
            return f"Context:\n{self.context}{CONTEXT_SEPARATOR}{self.prompt}"
        return self.prompt


class ExecutionResult(BaseModel):
    stdout: str = ""
    stderr: str = ""
    exit_status: int = 0


class NormalizedResponse(BaseModel):
    model: str
    answer_text: str
    warnings: str = ""

    def render(self) -> str:
        """Compose the single text block returned to the caller."""
        text = f"[Gemini {self.model}]\n{self.answer_text}"
        if self.warnings:
            text = f"{text}\n\n[warnings: {self.warnings}]"
        return text

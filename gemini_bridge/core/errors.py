"""
Gemini bridge exceptions.
"""

from __future__ import annotations

from typing import Optional


class InvocationError(RuntimeError):
    """Base class for failures while running the gemini CLI."""

    def __init__(
        self,
        detail: str,
        *,
        model: Optional[str] = None,
        stderr: str = "",
        exit_status: Optional[int] = None,
    ) -> None:
        self.model = model
        self.stderr = stderr or ""
        self.exit_status = exit_status
        super().__init__(detail)


class InvocationTimeoutError(InvocationError):
    """Raised when the CLI does not exit within the wall-clock budget."""


class OutputLimitExceededError(InvocationError):
    """Raised when captured stdout+stderr exceed the configured byte cap."""


class NonZeroExitError(InvocationError):
    """Raised when the CLI exits with a non-zero status."""


class ExecutableNotFoundError(InvocationError):
    """Raised when the CLI binary cannot be located or launched."""

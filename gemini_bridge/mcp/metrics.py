import time
import logging
from typing import Any, Dict, Optional

logger = logging.getLogger("GeminiBridge.mcp.metrics")


class McpMetrics:
    """
    Tracks timing and payload size for a single gemini tool call.
    """
    def __init__(self, msg_id: Any, name: str, model: Optional[str] = None):
        self.msg_id = msg_id
        self.name = name
        self.model = model
        self.response_bytes = 0
        self.is_error = False
        self.responded = False
        self.started_monotonic = time.monotonic()

    def record_result(self, result: Dict[str, Any]) -> None:
        """Record the tools/call result payload before it is sent."""
        self.responded = True
        self.is_error = bool(result.get("isError"))
        for block in result.get("content") or []:
            text = block.get("text") if isinstance(block, dict) else None
            if isinstance(text, str):
                self.response_bytes += len(text.encode("utf-8"))

    def get_outcome(self) -> str:
        if not self.responded:
            return "no_response"
        if self.is_error:
            return "error"
        return "success"

    def elapsed_ms(self) -> float:
        return max(0.0, (time.monotonic() - self.started_monotonic) * 1000.0)

    def log_telemetry(self, warn_threshold_ms: float) -> None:
        """Log normalized telemetry for the tool call."""
        elapsed_ms = self.elapsed_ms()
        log_method = logger.warning if elapsed_ms >= warn_threshold_ms else logger.info
        log_method(
            "Tool call telemetry: name=%s id=%r model=%s outcome=%s elapsed_ms=%.1f response_bytes=%d",
            self.name,
            self.msg_id,
            self.model or "n/a",
            self.get_outcome(),
            elapsed_ms,
            self.response_bytes,
        )

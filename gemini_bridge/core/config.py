"""
Gemini Bridge Configuration
---------------------------
Centralized configuration for the MCP bridge.
Loads from environment variables and YAML config files.
"""

import os
import logging
from typing import Optional, List

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger("GeminiBridge.Config")

DEFAULT_GEMINI_PATH = "gemini"
DEFAULT_MODEL = "gemini-2.5-pro"
FAST_MODEL = "gemini-2.5-flash"
SUPPORTED_MODELS = (DEFAULT_MODEL, FAST_MODEL)
DEFAULT_TIMEOUT_SECONDS = 120.0
DEFAULT_MAX_OUTPUT_BYTES = 10 * 1024 * 1024
DEFAULT_NOISE_PATTERNS = ("Loaded cached", "Loading extension", "Hook registry")
DEFAULT_DISPATCH_MAX_WORKERS = 4
DEFAULT_TOOL_CALL_WARN_MS = 90000.0


def _parse_positive_float_env(name: str) -> Optional[float]:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return None
    try:
        value = float(raw)
        if value <= 0:
            raise ValueError
        return value
    except ValueError:
        logger.warning(
            "Invalid %s value '%s'; expected positive float. Ignoring.",
            name,
            raw,
        )
        return None


def _parse_positive_int_env(name: str) -> Optional[int]:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return None
    try:
        value = int(raw)
        if value <= 0:
            raise ValueError
        return value
    except ValueError:
        logger.warning(
            "Invalid %s value '%s'; expected positive integer. Ignoring.",
            name,
            raw,
        )
        return None


def _parse_list_env(name: str) -> Optional[List[str]]:
    raw = os.environ.get(name)
    if raw is None:
        return None
    items: List[str] = []
    for item in raw.split(","):
        candidate = item.strip()
        if candidate:
            items.append(candidate)
    return items


class BridgeConfig(BaseModel):
    """Root configuration for the gemini MCP bridge."""
    gemini_path: str = DEFAULT_GEMINI_PATH
    default_model: str = DEFAULT_MODEL
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES
    noise_patterns: List[str] = Field(default_factory=lambda: list(DEFAULT_NOISE_PATTERNS))
    dispatch_max_workers: int = DEFAULT_DISPATCH_MAX_WORKERS
    dispatch_queue_limit: Optional[int] = None
    tool_call_warn_ms: float = DEFAULT_TOOL_CALL_WARN_MS
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @property
    def effective_queue_limit(self) -> int:
        if self.dispatch_queue_limit is None:
            return self.dispatch_max_workers * 8
        return max(self.dispatch_max_workers, self.dispatch_queue_limit)

    @classmethod
    def from_env(cls) -> "BridgeConfig":
        """
        Load configuration from environment variables.

        Environment variables override defaults:
        - GEMINI_PATH: gemini CLI executable
        - GEMINI_MODEL: model used when a call omits one
        - GEMINI_MCP_TIMEOUT_SEC: wall-clock budget per invocation
        - GEMINI_MCP_MAX_OUTPUT_BYTES: cap on captured stdout+stderr
        - GEMINI_MCP_NOISE_PATTERNS: comma-separated stderr substrings to drop
        - GEMINI_MCP_DISPATCH_MAX_WORKERS / GEMINI_MCP_DISPATCH_QUEUE_LIMIT
        - GEMINI_MCP_TOOL_CALL_WARN_MS: telemetry warning threshold
        - GEMINI_MCP_LOG_LEVEL / GEMINI_MCP_LOG_FILE
        """
        config = cls(
            gemini_path=os.environ.get("GEMINI_PATH") or DEFAULT_GEMINI_PATH,
            default_model=os.environ.get("GEMINI_MODEL") or DEFAULT_MODEL,
            log_level=os.environ.get("GEMINI_MCP_LOG_LEVEL", "INFO"),
            log_file=os.environ.get("GEMINI_MCP_LOG_FILE") or None,
        )
        return config.apply_env_overrides()

    def apply_env_overrides(self) -> "BridgeConfig":
        timeout = _parse_positive_float_env("GEMINI_MCP_TIMEOUT_SEC")
        if timeout is not None:
            self.timeout_seconds = timeout
        max_output = _parse_positive_int_env("GEMINI_MCP_MAX_OUTPUT_BYTES")
        if max_output is not None:
            self.max_output_bytes = max_output
        noise = _parse_list_env("GEMINI_MCP_NOISE_PATTERNS")
        if noise is not None:
            self.noise_patterns = noise
        workers = _parse_positive_int_env("GEMINI_MCP_DISPATCH_MAX_WORKERS")
        if workers is not None:
            self.dispatch_max_workers = workers
        queue_limit = _parse_positive_int_env("GEMINI_MCP_DISPATCH_QUEUE_LIMIT")
        if queue_limit is not None:
            self.dispatch_queue_limit = queue_limit
        warn_ms = _parse_positive_float_env("GEMINI_MCP_TOOL_CALL_WARN_MS")
        if warn_ms is not None:
            self.tool_call_warn_ms = warn_ms
        return self

    @classmethod
    def from_yaml(cls, path: str) -> "BridgeConfig":
        """Load configuration from a YAML file; environment variables still win."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except FileNotFoundError:
            logger.warning("Config file not found: %s — using environment", path)
            return cls.from_env()
        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must contain a mapping")
        config = cls(**data)
        if os.environ.get("GEMINI_PATH"):
            config.gemini_path = os.environ["GEMINI_PATH"]
        if os.environ.get("GEMINI_MODEL"):
            config.default_model = os.environ["GEMINI_MODEL"]
        return config.apply_env_overrides()


def load_config() -> BridgeConfig:
    """Resolve configuration from GEMINI_MCP_CONFIG when set, else the environment."""
    path = os.environ.get("GEMINI_MCP_CONFIG")
    if path:
        return BridgeConfig.from_yaml(path)
    return BridgeConfig.from_env()

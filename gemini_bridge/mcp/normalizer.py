"""
Output normalization for gemini CLI results.

Answer extraction is an ordered chain of strategies, each returning the
answer or None; the first hit wins:

  1. strict JSON parse of the whole stdout, read the `response` field
  2. targeted regex scan for a quoted `"response": "..."` field
  3. raw stdout, verbatim (always succeeds)

The CLI does not guarantee pure JSON on stdout: banners and log lines may
precede or follow the payload, and the output cap can cut it short. Tier 3
may therefore hand back diagnostic text along with the answer; that
degraded behaviour is intentional.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Callable, Iterable, List, Optional, Sequence

from gemini_bridge.core.config import DEFAULT_NOISE_PATTERNS
from gemini_bridge.core.types import ExecutionResult, NormalizedResponse

logger = logging.getLogger("GeminiBridge.mcp.normalizer")

_RESPONSE_FIELD_RE = re.compile(r'"response"\s*:\s*"((?:[^"\\]|\\.)*)"')

AnswerStrategy = Callable[[str], Optional[str]]


def _from_structured_payload(stdout: str) -> Optional[str]:
    try:
        payload = json.loads(stdout)
    except (json.JSONDecodeError, ValueError):
        return None
    response = payload.get("response") if isinstance(payload, dict) else None
    if response:
        return response if isinstance(response, str) else json.dumps(response)
    # Well-formed but no usable answer field: hand back the raw stream.
    return stdout


def _from_response_field(stdout: str) -> Optional[str]:
    match = _RESPONSE_FIELD_RE.search(stdout)
    if not match:
        return None
    try:
        return json.loads(f'"{match.group(1)}"')
    except json.JSONDecodeError:
        logger.debug("Matched response field but could not decode its escapes")
        return None


def _raw_passthrough(stdout: str) -> Optional[str]:
    return stdout


ANSWER_STRATEGIES: Sequence[AnswerStrategy] = (
    _from_structured_payload,
    _from_response_field,
    _raw_passthrough,
)


def extract_answer(stdout: str, strategies: Sequence[AnswerStrategy] = ANSWER_STRATEGIES) -> str:
    for strategy in strategies:
        answer = strategy(stdout)
        if answer is not None:
            if strategy is not strategies[0]:
                logger.info("gemini stdout was not clean JSON; used %s", strategy.__name__)
            return answer
    return stdout


def is_noise_line(line: str, noise_patterns: Iterable[str]) -> bool:
    return any(pattern in line for pattern in noise_patterns)


def filter_warnings(stderr: str, noise_patterns: Iterable[str] = DEFAULT_NOISE_PATTERNS) -> str:
    """Drop known-benign and blank stderr lines; keep the rest in order."""
    if not stderr:
        return ""
    patterns = [p for p in noise_patterns if p]
    kept: List[str] = [
        line
        for line in stderr.split("\n")
        if line.strip() and not is_noise_line(line, patterns)
    ]
    return "\n".join(kept)


def normalize(
    result: ExecutionResult,
    model: str,
    noise_patterns: Iterable[str] = DEFAULT_NOISE_PATTERNS,
) -> NormalizedResponse:
    return NormalizedResponse(
        model=model,
        answer_text=extract_answer(result.stdout),
        warnings=filter_warnings(result.stderr, noise_patterns),
    )

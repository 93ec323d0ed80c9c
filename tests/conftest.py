from __future__ import annotations

import os
import stat
import sys
import textwrap
from pathlib import Path

import pytest

from gemini_bridge.core.config import BridgeConfig
from gemini_bridge.mcp.state import reset_session_state

# Behaviour is selected by keywords in the -p prompt so one server process
# can exercise several paths.
_FAKE_GEMINI_SOURCE = textwrap.dedent(
    """
    import json
    import os
    import sys
    import time

    args = sys.argv[1:]
    opts = dict(zip(args[::2], args[1::2]))
    prompt = opts.get("-p", "")

    record = os.environ.get("FAKE_GEMINI_ARGV_FILE")
    if record:
        with open(record, "w", encoding="utf-8") as f:
            json.dump({"argv": args, "no_color": os.environ.get("NO_COLOR")}, f)

    if "__silent_fail__" in prompt:
        sys.exit(3)

    sys.stderr.write("Loaded cached credentials.\\n")
    sys.stderr.flush()
    if "__sleep__" in prompt:
        time.sleep(30)
    if "__fail__" in prompt:
        sys.stderr.write("Error: quota exceeded for model\\n")
        sys.exit(1)
    if "__flood__" in prompt:
        sys.stdout.write("x" * 200000)
        sys.stdout.flush()
        time.sleep(30)

    payload = json.dumps({"response": os.environ.get("FAKE_GEMINI_RESPONSE", "OK"), "stats": {}})
    if "__warn__" in prompt:
        sys.stderr.write("Warning: model is deprecated\\n")
    if "__noisy__" in prompt:
        sys.stdout.write("Loading extension: banner\\n" + payload + "\\ntrailing log line\\n")
    else:
        sys.stdout.write(payload)
    """
)


@pytest.fixture(autouse=True)
def _reset_session_state():
    reset_session_state()
    yield
    reset_session_state()


@pytest.fixture()
def fake_gemini(tmp_path: Path) -> Path:
    """Write an executable stand-in for the gemini CLI."""
    if os.name == "nt":
        pytest.skip("fake gemini script relies on a POSIX shebang")
    script = tmp_path / "gemini"
    script.write_text(f"#!{sys.executable}\n{_FAKE_GEMINI_SOURCE}", encoding="utf-8")
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return script


@pytest.fixture()
def config(fake_gemini: Path) -> BridgeConfig:
    return BridgeConfig(gemini_path=str(fake_gemini), timeout_seconds=10.0)


@pytest.fixture()
def shell_gemini(tmp_path: Path):
    """Factory for a /bin/sh stand-in, for CLIs that spawn their own children."""
    if os.name == "nt":
        pytest.skip("shell stand-in needs /bin/sh")

    def _write(body: str) -> Path:
        script = tmp_path / "gemini-sh"
        script.write_text("#!/bin/sh\n" + body, encoding="utf-8")
        script.chmod(0o755)
        return script

    return _write

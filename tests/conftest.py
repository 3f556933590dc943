"""Shared test fixtures."""

from __future__ import annotations

import os
import stat
import sys
from collections.abc import Callable
from pathlib import Path

import pytest

from agent_relay.config import OrchestratorSettings

_LEGACY_ENV_VARS = (
    "CLAUDE_CLI_PATH",
    "GEMINI_CLI_PATH",
    "CODEX_CLI_PATH",
    "CLAUDE_MODEL",
    "GEMINI_MODEL",
    "CODEX_MODEL",
    "DEFAULT_AGENT",
    "HISTORY_WINDOW",
    "SOUL_PATH",
    "SESSION_TTL_HOURS",
    "MAX_RESPONSE_LENGTH",
    "MEMORY_INJECT",
    "MEMORY_INJECT_LIMIT",
)


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    """Keep the developer's relay configuration out of the tests."""
    for name in list(os.environ):
        if name.startswith("AGENT_RELAY_"):
            monkeypatch.delenv(name)
    for name in _LEGACY_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def fast_orchestrator_settings() -> OrchestratorSettings:
    """Phase timings scaled down so timer behaviour is observable in tests."""
    return OrchestratorSettings(
        vibe_delay_seconds=0.05,
        vibe_interval_seconds=0.02,
        background_delay_seconds=0.1,
        stream_edit_interval_seconds=0.05,
        stream_preview_chars=20,
        max_response_length=4_000,
    )


def write_launcher(path: Path, *python_args: str) -> Path:
    """Executable shell launcher running the current interpreter."""
    quoted = " ".join(f'"{arg}"' for arg in python_args)
    path.write_text(f'#!/usr/bin/env sh\nexec "{sys.executable}" {quoted} "$@"\n', "utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR)
    return path


@pytest.fixture()
def echo_agent(tmp_path) -> Path:
    """Launcher for the bundled echo agent, usable as any *_CLI_PATH."""
    return write_launcher(
        tmp_path / "echo-agent",
        "-m",
        "agent_relay.orchestrator.backend.echo_agent",
    )


@pytest.fixture()
def script_agent(tmp_path) -> Callable[[str, str], Path]:
    """Build a launcher for an ad-hoc python script."""

    def _make(name: str, body: str) -> Path:
        implementation = tmp_path / f"{name}_impl.py"
        implementation.write_text(body.strip() + "\n", "utf-8")
        return write_launcher(tmp_path / name, str(implementation))

    return _make

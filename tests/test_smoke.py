from __future__ import annotations

import asyncio

import allure
from agent_fakes import FakeBackend, FakeRun

from agent_relay.config import AgentSettings, ContextSettings
from agent_relay.orchestrator.context import ContextBuilder
from agent_relay.orchestrator.dispatcher import AgentDispatcher
from agent_relay.orchestrator.models import AgentRunError, FailureClass
from agent_relay.orchestrator.registry import AgentRegistry
from agent_relay.orchestrator.smoke import PING_PROMPT, AgentPingResult, probe_binaries, run_ping

pytestmark = [
    allure.epic("Agent Runtime"),
    allure.feature("Ping & Binary Probe"),
]


def test_probe_binaries_runs_version_check(echo_agent, tmp_path) -> None:
    registry = AgentRegistry.from_settings(
        AgentSettings(
            claude_cli_path=str(echo_agent),
            gemini_cli_path=str(tmp_path / "missing-gemini"),
        ),
    )

    status = probe_binaries([registry.describe("claude"), registry.describe("gemini")])

    assert status == {"claude": True, "gemini": False}


def test_probe_binaries_rejects_failing_version_check(script_agent) -> None:
    broken = script_agent("broken-agent", "import sys\nsys.exit(1)")
    registry = AgentRegistry.from_settings(AgentSettings(codex_cli_path=str(broken)))

    assert probe_binaries([registry.describe("codex")]) == {"codex": False}


def test_run_ping_reports_each_agent() -> None:
    registry = AgentRegistry.from_settings(AgentSettings())
    backend = FakeBackend(
        [
            FakeRun(output="OK\n"),
            FakeRun(
                error=AgentRunError(
                    "Authentication error. Check the CLI credentials.",
                    failure_class=FailureClass.AUTH_FAILURE,
                ),
            ),
        ],
    )
    dispatcher = AgentDispatcher(registry, ContextBuilder(ContextSettings()), backend)

    results = asyncio.run(
        run_ping(
            dispatcher,
            registry.list_builtins(),
            available={"claude": True, "gemini": True, "codex": False},
        ),
    )

    claude, gemini, codex = results
    assert claude.ok
    assert claude.reply_preview == "OK"
    assert gemini.available and not gemini.ok
    assert gemini.error == "Authentication error. Check the CLI credentials."
    assert not codex.available
    assert len(backend.requests) == 2
    assert backend.requests[0].argv[-1] == PING_PROMPT


def test_ping_result_render() -> None:
    ok = AgentPingResult("claude", "🤖 Claude Code", True, True, 120, "OK", None)
    failed = AgentPingResult("gemini", "✨ Gemini CLI", True, False, 80, "", "boom")
    missing = AgentPingResult("codex", "🧠 OpenAI Codex CLI", False, False, 0, "", "CLI not found")

    assert ok.render() == "🤖 Claude Code: ✅ OK (120ms)\n  OK"
    assert failed.render() == "✨ Gemini CLI: ❌ boom (80ms)"
    assert missing.render() == "🧠 OpenAI Codex CLI: ❌ CLI not found"

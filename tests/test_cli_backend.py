from __future__ import annotations

import asyncio
import sys
import time
from pathlib import Path

import allure
import pytest

from agent_relay.orchestrator.backend import AgentRunRequest, CliAgentBackend
from agent_relay.orchestrator.cancellation import CancellationToken
from agent_relay.orchestrator.models import AgentRunError, FailureClass

pytestmark = [
    allure.epic("Agent Runtime"),
    allure.feature("CLI Subprocess Backend"),
]

_IGNORE_SIGTERM_AND_SLEEP = """
import signal, sys, time
signal.signal(signal.SIGTERM, signal.SIG_IGN)
print("working", flush=True)
time.sleep(30)
"""


def _python(script: str, **kwargs) -> AgentRunRequest:
    return AgentRunRequest(argv=[sys.executable, "-c", script], **kwargs)


def test_run_returns_stdout_of_successful_agent() -> None:
    backend = CliAgentBackend()

    result = asyncio.run(backend.run(_python("print('hello from agent')")))

    assert result.stdout == "hello from agent\n"
    assert result.exit_code == 0
    assert result.elapsed_seconds >= 0


def test_run_prefers_stdout_over_non_zero_exit() -> None:
    backend = CliAgentBackend()
    script = "import sys; print('partial answer'); sys.stderr.write('warn\\n'); sys.exit(3)"

    result = asyncio.run(backend.run(_python(script)))

    assert result.stdout == "partial answer\n"
    assert result.exit_code == 3
    assert result.stderr == "warn\n"


def test_run_returns_placeholder_for_empty_output() -> None:
    backend = CliAgentBackend()

    result = asyncio.run(backend.run(_python("pass")))

    assert result.stdout == "(no response)"


def test_run_classifies_rate_limit_from_stderr() -> None:
    backend = CliAgentBackend()
    script = "import sys; sys.stderr.write('HTTP 429 Too Many Requests\\n'); sys.exit(1)"

    with pytest.raises(AgentRunError) as excinfo:
        asyncio.run(backend.run(_python(script)))

    assert excinfo.value.failure_class is FailureClass.RATE_LIMITED
    assert excinfo.value.exit_code == 1
    assert "429" in excinfo.value.stderr


def test_run_reports_last_stderr_line_for_generic_failure() -> None:
    backend = CliAgentBackend()
    script = "import sys; sys.stderr.write('booting\\nfatal: broken pipe\\n'); sys.exit(2)"

    with pytest.raises(AgentRunError) as excinfo:
        asyncio.run(backend.run(_python(script)))

    assert excinfo.value.failure_class is FailureClass.GENERIC_EXIT
    assert str(excinfo.value) == "fatal: broken pipe"


def test_missing_binary_names_the_config_variable(tmp_path) -> None:
    backend = CliAgentBackend()
    request = AgentRunRequest(
        argv=[str(tmp_path / "missing-agent"), "hello"],
        config_hint="CLAUDE_CLI_PATH",
    )

    with pytest.raises(AgentRunError) as excinfo:
        asyncio.run(backend.run(request))

    assert excinfo.value.failure_class is FailureClass.BINARY_NOT_FOUND
    assert "CLAUDE_CLI_PATH" in str(excinfo.value)
    assert "is not installed or not in PATH" in str(excinfo.value)


def test_safety_timeout_kills_agent_ignoring_sigterm() -> None:
    timeout, grace = 0.5, 0.3
    backend = CliAgentBackend(safety_timeout_seconds=timeout, kill_grace_seconds=grace)
    started = time.monotonic()

    with pytest.raises(AgentRunError) as excinfo:
        asyncio.run(backend.run(_python(_IGNORE_SIGTERM_AND_SLEEP)))

    assert excinfo.value.failure_class is FailureClass.TIMEOUT
    assert str(excinfo.value).startswith("Timeout:")
    elapsed = time.monotonic() - started
    assert timeout <= elapsed < timeout + grace + 0.4


def test_cancel_token_terminates_running_agent() -> None:
    backend = CliAgentBackend(kill_grace_seconds=0.3)

    async def scenario() -> None:
        token = CancellationToken()
        asyncio.get_running_loop().call_later(0.3, token.cancel)
        await backend.run(_python("import time; time.sleep(30)", cancel_token=token))

    started = time.monotonic()
    with pytest.raises(AgentRunError) as excinfo:
        asyncio.run(scenario())

    assert excinfo.value.cancelled
    assert time.monotonic() - started < 5


def test_pre_cancelled_token_never_spawns(tmp_path) -> None:
    backend = CliAgentBackend()
    marker = tmp_path / "spawned"
    token = CancellationToken()
    token.cancel()
    request = _python(f"open({str(marker)!r}, 'w').close()", cancel_token=token)

    with pytest.raises(AgentRunError) as excinfo:
        asyncio.run(backend.run(request))

    assert excinfo.value.failure_class is FailureClass.CANCELLED
    assert not marker.exists()


def test_run_streaming_forwards_chunks_as_they_arrive() -> None:
    backend = CliAgentBackend()
    script = "import time; print('one', flush=True); time.sleep(0.3); print('two', flush=True)"
    chunks: list[str] = []

    result = asyncio.run(backend.run_streaming(_python(script), chunks.append))

    assert len(chunks) >= 2
    assert chunks[0] == "one\n"
    assert "".join(chunks) == "one\ntwo\n"
    assert result.stdout == "one\ntwo\n"


def test_stdin_is_closed_so_readers_do_not_hang() -> None:
    backend = CliAgentBackend(safety_timeout_seconds=10)
    script = "import sys; print(repr(sys.stdin.read()))"

    empty = asyncio.run(backend.run(_python(script)))
    fed = asyncio.run(backend.run(_python(script, stdin_text="payload")))

    assert empty.stdout.strip() == "''"
    assert fed.stdout.strip() == "'payload'"


def test_child_environment_drops_claudecode_and_sets_term(monkeypatch) -> None:
    monkeypatch.setenv("CLAUDECODE", "1")
    monkeypatch.setenv("TERM", "dumb")
    backend = CliAgentBackend()
    script = "import os; print(os.environ.get('CLAUDECODE', 'unset'), os.environ['TERM'])"

    result = asyncio.run(backend.run(_python(script)))

    assert result.stdout.strip() == "unset xterm-256color"


def test_agent_runs_in_configured_workdir(tmp_path) -> None:
    backend = CliAgentBackend(workdir=tmp_path)

    result = asyncio.run(backend.run(_python("import os; print(os.getcwd())")))

    assert Path(result.stdout.strip()).resolve() == tmp_path.resolve()

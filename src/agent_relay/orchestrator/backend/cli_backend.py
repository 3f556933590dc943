"""Subprocess-based backend runner for CLI agents."""

from __future__ import annotations

import asyncio
import codecs
import logging
import os
import tempfile
from collections.abc import AsyncGenerator, Callable
from pathlib import Path

from agent_relay.config import RunnerSettings
from agent_relay.orchestrator.backend.base import (
    AgentRunRequest,
    OutputChunk,
    RunCompleted,
    StreamEvent,
    collect_run,
)
from agent_relay.orchestrator.failure_classifier import classify_run_failure
from agent_relay.orchestrator.models import AgentRunError, FailureClass, RunResult
from agent_relay.orchestrator.sanitization import sanitize_preview

logger = logging.getLogger(__name__)

NO_RESPONSE_PLACEHOLDER = "(no response)"
_READ_CHUNK_BYTES = 4096
_STDERR_LOG_CHARS = 120

_DONE = "done"
_CANCELLED = "cancelled"
_TIMED_OUT = "timed_out"


class CliAgentBackend:
    """Execute agent CLIs as argv subprocesses with a hard safety timeout."""

    def __init__(
        self,
        *,
        safety_timeout_seconds: float = 1_800.0,
        kill_grace_seconds: float = 2.0,
        workdir: Path | None = None,
    ) -> None:
        self.safety_timeout_seconds = safety_timeout_seconds
        self.kill_grace_seconds = kill_grace_seconds
        self.workdir = workdir

    @classmethod
    def from_settings(cls, settings: RunnerSettings) -> CliAgentBackend:
        return cls(
            safety_timeout_seconds=settings.safety_timeout_seconds,
            kill_grace_seconds=settings.kill_grace_seconds,
            workdir=settings.workdir,
        )

    async def run(self, request: AgentRunRequest) -> RunResult:
        return await collect_run(self.stream(request))

    async def run_streaming(
        self,
        request: AgentRunRequest,
        on_chunk: Callable[[str], None],
    ) -> RunResult:
        return await collect_run(self.stream(request), on_chunk)

    async def stream(self, request: AgentRunRequest) -> AsyncGenerator[StreamEvent, None]:
        """Spawn the agent and yield its stdout as it arrives."""

        token = request.cancel_token
        if token is not None and token.cancelled:
            raise AgentRunError("cancelled", failure_class=FailureClass.CANCELLED)
        if not request.argv:
            raise AgentRunError(
                "Agent command is empty.",
                failure_class=FailureClass.GENERIC_EXIT,
            )

        executable = request.argv[0]
        logger.debug(
            "Spawning: %s (%d args, safety timeout: %.0fs)",
            executable,
            len(request.argv) - 1,
            self.safety_timeout_seconds,
        )
        process = await self._spawn(request)

        loop = asyncio.get_running_loop()
        started = loop.time()
        deadline = started + self.safety_timeout_seconds
        stdout_queue: asyncio.Queue[str | None] = asyncio.Queue()
        stdout_pump = asyncio.create_task(_pump_stdout(process.stdout, stdout_queue))
        stderr_task = asyncio.create_task(_collect_stderr(process.stderr))
        stdin_task = asyncio.create_task(_feed_stdin(process.stdin, request.stdin_text))
        cancel_wait = asyncio.create_task(token.wait()) if token is not None else None
        stdout_parts: list[str] = []

        try:
            while True:
                next_chunk = asyncio.create_task(stdout_queue.get())
                state = await _race(next_chunk, cancel_wait, deadline)
                if state != _DONE:
                    next_chunk.cancel()
                    await self._abort(process, state, request)
                chunk = next_chunk.result()
                if chunk is None:
                    break
                stdout_parts.append(chunk)
                yield OutputChunk(chunk)

            exit_wait = asyncio.create_task(process.wait())
            state = await _race(exit_wait, cancel_wait, deadline)
            if state != _DONE:
                exit_wait.cancel()
                await self._abort(process, state, request)
            exit_code = exit_wait.result()
            stderr = await stderr_task
        finally:
            for helper in (cancel_wait, stdin_task, stdout_pump):
                if helper is not None and not helper.done():
                    helper.cancel()
            if not stderr_task.done():
                stderr_task.cancel()
            if process.returncode is None:
                await self._terminate(process)

        elapsed = loop.time() - started
        stdout = "".join(stdout_parts)
        if exit_code == 0 or stdout.strip():
            if exit_code != 0:
                logger.warning(
                    "Agent %s exited with code %s but produced output; treating as success",
                    request.agent_id or executable,
                    exit_code,
                )
            yield RunCompleted(
                RunResult(
                    stdout=stdout or NO_RESPONSE_PLACEHOLDER,
                    stderr=stderr,
                    exit_code=exit_code,
                    elapsed_seconds=elapsed,
                ),
            )
            return

        classification = classify_run_failure(stderr=stderr, exit_code=exit_code)
        logger.warning(
            "Agent %s failed: exit_code=%s rule=%s pattern=%s stderr=%r",
            request.agent_id or executable,
            exit_code,
            classification.matched_rule,
            classification.matched_pattern,
            sanitize_preview(stderr),
        )
        raise AgentRunError(
            classification.message,
            failure_class=classification.failure_class,
            exit_code=exit_code,
            stderr=stderr,
        )

    async def _spawn(self, request: AgentRunRequest) -> asyncio.subprocess.Process:
        executable = request.argv[0]
        try:
            return await asyncio.create_subprocess_exec(
                *request.argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(self._neutral_cwd()),
                env=_child_env(),
            )
        except FileNotFoundError as error:
            hint = request.config_hint or f"{executable.upper()}_CLI_PATH"
            raise AgentRunError(
                f'CLI "{executable}" is not installed or not in PATH. '
                f"Ask the operator to configure {hint}.",
                failure_class=FailureClass.BINARY_NOT_FOUND,
            ) from error
        except OSError as error:
            raise AgentRunError(
                f'Could not start CLI "{executable}": {error}',
                failure_class=FailureClass.GENERIC_EXIT,
            ) from error

    def _neutral_cwd(self) -> Path:
        # Outside any project tree so the agent does not behave as a dev tool.
        if self.workdir is not None:
            return self.workdir
        home = Path.home()
        if home.is_dir():
            return home
        return Path(tempfile.gettempdir())

    async def _abort(
        self,
        process: asyncio.subprocess.Process,
        state: str,
        request: AgentRunRequest,
    ) -> None:
        await self._terminate(process)
        if state == _CANCELLED:
            logger.info("Agent %s cancelled", request.agent_id or request.argv[0])
            raise AgentRunError("cancelled", failure_class=FailureClass.CANCELLED)
        logger.warning(
            "Agent %s exceeded safety timeout of %.0fs",
            request.agent_id or request.argv[0],
            self.safety_timeout_seconds,
        )
        raise AgentRunError(
            f"Timeout: the agent took longer than {self.safety_timeout_seconds:.0f}s.",
            failure_class=FailureClass.TIMEOUT,
        )

    async def _terminate(self, process: asyncio.subprocess.Process) -> None:
        if process.returncode is not None:
            return
        try:
            process.terminate()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(process.wait(), timeout=self.kill_grace_seconds)
        except TimeoutError:
            pass
        else:
            return
        try:
            process.kill()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(process.wait(), timeout=max(self.kill_grace_seconds, 1.0))
        except TimeoutError:
            logger.warning("Agent process %s did not exit after SIGKILL", process.pid)


async def _race(
    task: asyncio.Task,
    cancel_wait: asyncio.Task | None,
    deadline: float,
) -> str:
    remaining = deadline - asyncio.get_running_loop().time()
    if remaining <= 0 and not task.done():
        return _TIMED_OUT
    waiters: set[asyncio.Task] = {task}
    if cancel_wait is not None:
        waiters.add(cancel_wait)
    done, _ = await asyncio.wait(
        waiters,
        timeout=max(0.0, remaining),
        return_when=asyncio.FIRST_COMPLETED,
    )
    if task in done:
        return _DONE
    if cancel_wait is not None and cancel_wait in done:
        return _CANCELLED
    return _TIMED_OUT


async def _pump_stdout(
    stream: asyncio.StreamReader | None,
    queue: asyncio.Queue[str | None],
) -> None:
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    if stream is not None:
        while True:
            raw = await stream.read(_READ_CHUNK_BYTES)
            if not raw:
                break
            text = decoder.decode(raw)
            if text:
                queue.put_nowait(text)
    tail = decoder.decode(b"", final=True)
    if tail:
        queue.put_nowait(tail)
    queue.put_nowait(None)


async def _collect_stderr(stream: asyncio.StreamReader | None) -> str:
    if stream is None:
        return ""
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    parts: list[str] = []
    while True:
        raw = await stream.read(_READ_CHUNK_BYTES)
        if not raw:
            break
        text = decoder.decode(raw)
        parts.append(text)
        logger.debug("[stderr] %s", text[:_STDERR_LOG_CHARS].rstrip())
    parts.append(decoder.decode(b"", final=True))
    return "".join(parts)


async def _feed_stdin(stream: asyncio.StreamWriter | None, text: str) -> None:
    # Always close stdin so tools that read it until EOF do not hang.
    if stream is None:
        return
    try:
        if text:
            stream.write(text.encode("utf-8"))
            await stream.drain()
        stream.close()
        await stream.wait_closed()
    except (BrokenPipeError, ConnectionResetError):
        logger.debug("Agent closed stdin before the input was fully written")


def _child_env() -> dict[str, str]:
    env = os.environ.copy()
    # Allows spawning the claude CLI from inside a claude session.
    env.pop("CLAUDECODE", None)
    env["TERM"] = "xterm-256color"
    return env

"""Local demo agent for CLI backend integration tests.

Accepts the argv layout of any built-in engine and answers with the task
line of the prompt, so the whole relay can run without a real agent CLI.
"""

from __future__ import annotations

import os
import sys
import time

_PROMPT_FLAGS = ("-p", "--prompt")


def extract_prompt(argv: list[str]) -> str:
    """Prompt argument: right after ``-p`` when present, otherwise the last one."""

    for flag in _PROMPT_FLAGS:
        if flag in argv:
            index = argv.index(flag)
            if index + 1 < len(argv):
                return argv[index + 1]
    return argv[-1] if argv else ""


def task_line(prompt: str) -> str:
    marker = "---\nTask: "
    if marker in prompt:
        return prompt.rsplit(marker, 1)[1].strip()
    return prompt.strip()


def main(argv: list[str] | None = None) -> int:
    """Echo the task back on stdout."""

    args = sys.argv[1:] if argv is None else argv
    delay = float(os.getenv("AGENT_RELAY_ECHO_DELAY_SECONDS", "0"))
    if delay > 0:
        time.sleep(delay)
    if "--version" in args:
        sys.stdout.write("echo-agent 1.0\n")
        return 0
    task = task_line(extract_prompt(args))
    if not task:
        sys.stderr.write("echo-agent: empty prompt\n")
        return 2
    sys.stdout.write(f"echo: {task}\n")
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())

"""Task orchestration between chat users and external CLI agents.

The package owns the part of the relay with real concurrency concerns:
resolving which agent to run, assembling a bounded prompt, running the
agent CLI as a subprocess with timeout and cancellation, and the per-user
single-flight state machine that keeps the chat responsive while a task
runs in the background.
"""

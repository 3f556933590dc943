"""Deterministic classification of failed agent runs from stderr content."""

from __future__ import annotations

from dataclasses import dataclass

from agent_relay.orchestrator.models import FailureClass

_MAX_STDERR_LINE_CHARS = 200

_RATE_LIMIT_PATTERNS: tuple[str, ...] = (
    "429",
    "ratelimitexceeded",
    "rate limit",
    "too many requests",
)
_CAPACITY_PATTERNS: tuple[str, ...] = (
    "model_capacity_exhausted",
    "no capacity available",
)
_QUOTA_PATTERNS: tuple[str, ...] = (
    "quota_exceeded",
    "quota",
)
_AUTH_PATTERNS: tuple[str, ...] = (
    "unauthenticated",
    "unauthorized",
    "api key",
    "auth",
)

_RULES: tuple[tuple[str, FailureClass, tuple[str, ...], str], ...] = (
    (
        "rate_limited",
        FailureClass.RATE_LIMITED,
        _RATE_LIMIT_PATTERNS,
        "Rate limit reached (429). Wait a moment and try again.",
    ),
    (
        "capacity_exhausted",
        FailureClass.CAPACITY_EXHAUSTED,
        _CAPACITY_PATTERNS,
        "No capacity available for the model. Try again in a few minutes.",
    ),
    (
        "quota_exceeded",
        FailureClass.QUOTA_EXCEEDED,
        _QUOTA_PATTERNS,
        "API quota exhausted. Check your account or wait for the next cycle.",
    ),
    (
        "auth_failure",
        FailureClass.AUTH_FAILURE,
        _AUTH_PATTERNS,
        "Authentication error. Check the CLI credentials.",
    ),
)


@dataclass(slots=True)
class RunFailureClassification:
    """Normalized failure classification result."""

    failure_class: FailureClass
    message: str
    matched_rule: str
    matched_pattern: str | None


def classify_run_failure(*, stderr: str, exit_code: int | None) -> RunFailureClassification:
    """Classify a non-zero exit with no usable stdout into a user-facing failure."""

    haystack = stderr.lower()
    for rule, failure_class, patterns, message in _RULES:
        pattern = _first_match(haystack, patterns)
        if pattern is not None:
            return RunFailureClassification(
                failure_class=failure_class,
                message=message,
                matched_rule=rule,
                matched_pattern=pattern,
            )

    last_line = _last_nonblank_line(stderr)
    if last_line:
        return RunFailureClassification(
            failure_class=FailureClass.GENERIC_EXIT,
            message=last_line[:_MAX_STDERR_LINE_CHARS],
            matched_rule="stderr_last_line",
            matched_pattern=None,
        )

    return RunFailureClassification(
        failure_class=FailureClass.GENERIC_EXIT,
        message=f"Agent CLI exited with code {exit_code}.",
        matched_rule="fallback_exit_code",
        matched_pattern=None,
    )


def _last_nonblank_line(text: str) -> str:
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    return lines[-1] if lines else ""


def _first_match(haystack: str, patterns: tuple[str, ...]) -> str | None:
    for pattern in patterns:
        if pattern in haystack:
            return pattern
    return None

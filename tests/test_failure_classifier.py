from __future__ import annotations

import allure

from agent_relay.orchestrator.failure_classifier import classify_run_failure
from agent_relay.orchestrator.models import FailureClass

pytestmark = [
    allure.epic("Agent Runtime"),
    allure.feature("Failure Classification"),
]


def test_classifier_maps_rate_limit() -> None:
    classified = classify_run_failure(stderr="HTTP 429 too many requests", exit_code=1)

    assert classified.failure_class == FailureClass.RATE_LIMITED
    assert classified.matched_rule == "rate_limited"
    assert classified.matched_pattern == "429"
    assert classified.message == "Rate limit reached (429). Wait a moment and try again."


def test_classifier_checks_rate_limit_before_quota() -> None:
    classified = classify_run_failure(
        stderr="RateLimitExceeded: quota for requests per minute",
        exit_code=1,
    )

    assert classified.failure_class == FailureClass.RATE_LIMITED
    assert classified.matched_pattern == "ratelimitexceeded"


def test_classifier_maps_capacity_exhausted() -> None:
    classified = classify_run_failure(
        stderr="error: MODEL_CAPACITY_EXHAUSTED for gemini-2.5-pro",
        exit_code=1,
    )

    assert classified.failure_class == FailureClass.CAPACITY_EXHAUSTED
    assert classified.message == "No capacity available for the model. Try again in a few minutes."


def test_classifier_checks_quota_before_auth() -> None:
    classified = classify_run_failure(
        stderr="quota_exceeded while authorizing request",
        exit_code=1,
    )

    assert classified.failure_class == FailureClass.QUOTA_EXCEEDED
    assert classified.matched_pattern == "quota_exceeded"


def test_classifier_maps_auth_failure() -> None:
    classified = classify_run_failure(stderr="Error: invalid API key provided", exit_code=1)

    assert classified.failure_class == FailureClass.AUTH_FAILURE
    assert classified.message == "Authentication error. Check the CLI credentials."


def test_classifier_falls_back_to_last_stderr_line() -> None:
    classified = classify_run_failure(
        stderr="starting up\nloading config\n  segmentation fault  \n\n",
        exit_code=139,
    )

    assert classified.failure_class == FailureClass.GENERIC_EXIT
    assert classified.matched_rule == "stderr_last_line"
    assert classified.message == "segmentation fault"


def test_classifier_clamps_last_stderr_line() -> None:
    classified = classify_run_failure(stderr="x" * 500, exit_code=1)

    assert classified.message == "x" * 200


def test_classifier_falls_back_to_exit_code() -> None:
    classified = classify_run_failure(stderr="  \n", exit_code=3)

    assert classified.failure_class == FailureClass.GENERIC_EXIT
    assert classified.matched_rule == "fallback_exit_code"
    assert classified.matched_pattern is None
    assert classified.message == "Agent CLI exited with code 3."

from __future__ import annotations

import allure

from agent_relay.orchestrator.sanitization import prompt_preview, sanitize_preview

pytestmark = [
    allure.epic("Agent Runtime"),
    allure.feature("Log Redaction"),
]


def test_sanitize_preview_redacts_tokens_and_emails() -> None:
    text = (
        "Authorization: Bearer abcdefghijklmnop\n"
        "ANTHROPIC_API_KEY=sk-ant-1234567890\n"
        "contact ops@example.com"
    )

    preview = sanitize_preview(text)

    assert "abcdefghijklmnop" not in preview
    assert "sk-ant-1234567890" not in preview
    assert "ops@example.com" not in preview
    assert "[redacted-email]" in preview


def test_sanitize_preview_clamps_and_handles_blank() -> None:
    assert sanitize_preview("   ") == ""
    assert len(sanitize_preview("x" * 900, max_chars=100)) == 100


def test_prompt_preview_is_single_line_and_clamped() -> None:
    assert prompt_preview("hello\n  world") == "hello world"
    assert prompt_preview("y" * 80) == "y" * 60 + "..."

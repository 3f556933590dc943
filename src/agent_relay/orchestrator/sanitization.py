"""Redaction of agent CLI diagnostics before they reach the logs."""

from __future__ import annotations

import re
from dataclasses import dataclass

STDERR_PREVIEW_CHARS = 500
PROMPT_PREVIEW_CHARS = 60


@dataclass(frozen=True, slots=True)
class _Redaction:
    name: str
    pattern: re.Pattern[str]
    replacement: str


# Order matters: credential assignments go before the bare key shapes they contain.
_REDACTIONS: tuple[_Redaction, ...] = (
    _Redaction(
        "credential_assignment",
        re.compile(
            r"(?i)\b(?:ANTHROPIC|CLAUDE|OPENAI|CODEX|GEMINI|GOOGLE|AGENT_RELAY)\w*?_?"
            r"(?:API_)?(?:KEY|TOKEN)\s*[:=]\s*\S+",
        ),
        "[redacted-secret]",
    ),
    _Redaction(
        "bearer_header",
        re.compile(r"(?i)\bbearer\s+[\w.~+/-]{8,}=*"),
        "Bearer [redacted-token]",
    ),
    _Redaction(
        "openai_or_anthropic_key",
        re.compile(r"\bsk-(?:ant-)?[\w-]{8,}"),
        "[redacted-token]",
    ),
    _Redaction(
        "google_api_key",
        re.compile(r"\bAIza[\w-]{20,}"),
        "[redacted-token]",
    ),
    _Redaction(
        "url_secret_param",
        re.compile(r"(?i)([?&](?:key|token|signature|auth)=)[^&\s]+"),
        r"\1[redacted]",
    ),
    _Redaction(
        "email",
        re.compile(r"\b[\w.%+-]+@[\w-]+(?:\.[\w-]+)*\.[A-Za-z]{2,}\b"),
        "[redacted-email]",
    ),
)


def sanitize_preview(text: str, *, max_chars: int = STDERR_PREVIEW_CHARS) -> str:
    """Redact API keys, tokens and emails, then clamp to ``max_chars``."""

    redacted = text.strip()
    for redaction in _REDACTIONS:
        redacted = redaction.pattern.sub(redaction.replacement, redacted)
    return redacted[:max_chars]


def prompt_preview(prompt: str, *, limit: int = PROMPT_PREVIEW_CHARS) -> str:
    """Single-line prompt excerpt for log lines."""

    compact = " ".join(prompt.split())
    if len(compact) <= limit:
        return compact
    return compact[:limit] + "..."

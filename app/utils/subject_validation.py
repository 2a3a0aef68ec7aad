"""Zine subject pre-check.

Rejects subjects that look like prompt-injection attempts and strips
characters that could break out of the prompt template. Runs before the rate
limit gate so rejected input never consumes budget.
"""

from __future__ import annotations

import re

from app.core.errors import ValidationAppError

_INJECTION_PATTERNS = [
    re.compile(r"ignore\s+(all\s+)?(previous|prior|above)\s+instructions?", re.IGNORECASE),
    re.compile(r"forget\s+(all\s+)?(previous|prior|above)\s+instructions?", re.IGNORECASE),
    re.compile(r"disregard\s+(all\s+)?(previous|prior|above)\s+instructions?", re.IGNORECASE),
    re.compile(r"you\s+are\s+(now\s+)?a\s+", re.IGNORECASE),
    re.compile(r"pretend\s+(you\s+are|to\s+be)", re.IGNORECASE),
    re.compile(r"roleplay\s+as", re.IGNORECASE),
    re.compile(r"act\s+as\s+(if\s+you\s+are\s+)?a\s+", re.IGNORECASE),
    re.compile(r"system\s*[:.]?\s*(prompt|message|instruction)", re.IGNORECASE),
    re.compile(r"new\s+instructions?", re.IGNORECASE),
    re.compile(r"override\s+(previous\s+)?instructions?", re.IGNORECASE),
    re.compile(r"jailbreak", re.IGNORECASE),
    re.compile(r"prompt\s*[:.]?\s*end", re.IGNORECASE),
    re.compile(r"\[\s*(system|user|human|assistant)\s*\]", re.IGNORECASE),
    re.compile(r"^\s*(system|user|human|assistant)\s*:", re.IGNORECASE),
    re.compile(r"```[\s\S]*?```"),
    re.compile(r"^\s*[{}\[\]]"),
]

_STRIP_CHARS = re.compile(r"[<>{}`'\"$\\]")


def validate_and_sanitize_subject(value: object, *, min_chars: int = 2, max_chars: int = 200) -> str:
    """Validate a zine subject and return its cleaned form.

    Args:
        value: Raw subject from the request body.
        min_chars: Minimum length after trimming.
        max_chars: Maximum length after trimming.

    Returns:
        The sanitized subject.

    Raises:
        ValidationAppError: If the subject is empty, out of bounds, matches
            an injection pattern, or is empty after sanitization.
    """
    if not isinstance(value, str) or not value:
        raise ValidationAppError(code="subject_invalid", message="Subject must be a non-empty string")

    trimmed = value.strip()
    if not trimmed:
        raise ValidationAppError(code="subject_empty", message="Subject cannot be empty")
    if len(trimmed) > max_chars:
        raise ValidationAppError(
            code="subject_too_long",
            message=f"Subject must be {max_chars} characters or less",
            details={"max_value": max_chars, "actual_value": len(trimmed)},
        )
    if len(trimmed) < min_chars:
        raise ValidationAppError(
            code="subject_too_short",
            message=f"Subject must be at least {min_chars} characters",
            details={"min_value": min_chars, "actual_value": len(trimmed)},
        )

    if any(pattern.search(trimmed) for pattern in _INJECTION_PATTERNS):
        raise ValidationAppError(
            code="subject_rejected",
            message="Subject contains invalid characters or patterns",
        )

    sanitized = _STRIP_CHARS.sub("", trimmed).strip()
    if not sanitized:
        raise ValidationAppError(
            code="subject_empty",
            message="Subject contains only invalid characters",
        )
    return sanitized

import re

_SCRIPT_OR_STYLE = re.compile(r"<(script|style)\b[^>]*>[\s\S]*?</\1>", re.IGNORECASE)
_TAG = re.compile(r"<[^>]*>")
_EVENT_HANDLER = re.compile(r"on\w+\s*=\s*[\"'][^\"']*[\"']", re.IGNORECASE)
_DANGEROUS_SCHEMES = re.compile(r"(javascript|vbscript|data):", re.IGNORECASE)

# Must never survive sanitization; if they do, the text is dropped.
_SUSPICIOUS = [
    re.compile(r"<script", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"vbscript:", re.IGNORECASE),
    re.compile(r"data:text/html", re.IGNORECASE),
    re.compile(r"on\w+\s*=", re.IGNORECASE),
    re.compile(r"<(iframe|object|embed|link|meta|style)", re.IGNORECASE),
]

REMOVED_PLACEHOLDER = "Content removed for security reasons"


def normalize_text(text: str) -> str:
    """Normalize line breaks and whitespace.

    Collapses runs of spaces/tabs and excessive blank lines, keeping paragraph
    breaks intact.
    """
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = re.sub(r"[ \t]+", " ", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def strip_markup(text: str) -> str:
    """Remove HTML tags, script/style blocks, inline handlers and script URLs."""

    text = _SCRIPT_OR_STYLE.sub("", text)
    text = _TAG.sub("", text)
    text = _EVENT_HANDLER.sub("", text)
    text = _DANGEROUS_SCHEMES.sub("", text)
    return text


def is_safe_text(text: str) -> bool:
    return not any(pattern.search(text) for pattern in _SUSPICIOUS)


def sanitize_generated_text(text: object) -> str:
    """Clean one piece of model output for plain-text rendering.

    Non-strings become empty strings. Text that still looks dangerous after
    cleaning is replaced by a placeholder.
    """
    if not isinstance(text, str):
        return ""

    cleaned = normalize_text(strip_markup(text))
    if not is_safe_text(cleaned):
        return REMOVED_PLACEHOLDER
    return cleaned


def sanitize_generated_list(items: object) -> list[str]:
    """Clean a list of model-generated strings, dropping empty entries."""

    if not isinstance(items, list):
        return []
    cleaned = (sanitize_generated_text(item) for item in items if isinstance(item, str))
    return [item for item in cleaned if item]

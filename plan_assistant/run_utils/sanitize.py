import re

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
# Characters that let user text break out of a quoted prompt field or JSON.
_INJECTION_CHARS = re.compile(r"[<>'\"`;{}\[\]\\]")
_ZERO_WIDTH = re.compile("[\u200b-\u200d\ufeff]")
_WHITESPACE_RUN = re.compile(r"\s+")


def sanitize_string(text: str, max_length: int = 500) -> str:
    """Clean free-text user input before it is embedded into a prompt.

    Never raises; the result is at most `max_length` characters long and
    sanitizing it again returns it unchanged.
    """
    sanitized = (text or "").strip()[:max_length]
    sanitized = _CONTROL_CHARS.sub("", sanitized)
    sanitized = _INJECTION_CHARS.sub("", sanitized)
    # Zero-width characters go before whitespace collapsing; removing them
    # later could join two spaces into a run.
    sanitized = _ZERO_WIDTH.sub("", sanitized)
    sanitized = _WHITESPACE_RUN.sub(" ", sanitized)
    return sanitized.strip()


_MARKDOWN_RULES = [
    (re.compile(r"\*\*(.+?)\*\*"), r"\1"),
    (re.compile(r"\*(.+?)\*"), r"\1"),
    (re.compile(r"__(.+?)__"), r"\1"),
    (re.compile(r"_(.+?)_"), r"\1"),
    (re.compile(r"`{1,3}(.+?)`{1,3}"), r"\1"),
    (re.compile(r"^#{1,6}\s+", re.MULTILINE), ""),
    (re.compile(r"\[(.+?)\]\(.+?\)"), r"\1"),
]


def strip_markdown(text: str) -> str:
    """Remove bold, italic, inline code, header and link syntax."""
    for pattern, repl in _MARKDOWN_RULES:
        text = pattern.sub(repl, text)
    return text.strip()

"""
Sanitizers for free text supplied by callers (late reasons, notes, addresses)
"""
import re
from typing import Optional

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b-\x1f\x7f]")
_WHITESPACE_RUN = re.compile(r"[ \t\r\n]+")


def clean_text(value: Optional[str], max_length: int) -> Optional[str]:
    """
    Strip control characters, collapse whitespace runs and truncate to max_length.

    Returns None for None or for text that is empty after cleaning.
    """
    if value is None:
        return None
    cleaned = _CONTROL_CHARS.sub("", str(value))
    cleaned = _WHITESPACE_RUN.sub(" ", cleaned).strip()
    if not cleaned:
        return None
    return cleaned[:max_length].rstrip()

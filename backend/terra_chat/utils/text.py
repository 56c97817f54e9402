"""
Text normalization for user supplied strings.
"""

import re

_WHITESPACE = re.compile(r"\s+")


def normalize_safe_text(value, max_length: int) -> str:
    """Trim, collapse whitespace runs and cap the length."""
    if not isinstance(value, str):
        return ""
    return _WHITESPACE.sub(" ", value.strip())[:max_length]

"""
Response mode selection.

The admin upload endpoint serves two kinds of callers through the same
pipeline: the browser form served by ``GET /admin/upload`` and programmatic
clients such as API testing tools. The ``responseType`` hint tells them apart.
"""
from enum import Enum
from typing import Any, Optional

# Name of the query parameter / form field carrying the hint
RESPONSE_TYPE_FIELD = "responseType"


class ResponseMode(str, Enum):
    HTML = "html"
    STRUCTURED = "structured"


def select_mode(hint: Optional[Any] = None) -> ResponseMode:
    """
    Map a ``responseType`` hint to a response mode.

    Only the literal ``"html"`` (case and surrounding whitespace ignored)
    selects HTML. Anything else, including a missing or non-string hint,
    falls back to the structured mode instead of raising.

    Args:
        hint: Raw hint value taken from the query string or the form fields

    Returns:
        ResponseMode: HTML or STRUCTURED
    """
    if isinstance(hint, str) and hint.strip().lower() == ResponseMode.HTML.value:
        return ResponseMode.HTML
    return ResponseMode.STRUCTURED

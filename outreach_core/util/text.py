"""Text sanitization for values received from third parties."""

import html
from typing import Any, Optional

import nh3


def strip_html(value: Any) -> Optional[str]:
    """Strip every HTML tag from a value and trim it.

    Returns None for missing values; other non-string values are converted
    to their string form first.
    """
    if value is None:
        return None
    text = nh3.clean(str(value), tags=set())  # Strip HTML
    return html.unescape(text).strip()

"""Terminal styling for banner and status lines.

Styles use rich's style syntax ("bold", "cyan", "bright_black", ...).
"""

import os
from typing import Any

from rich.color import ColorSystem
from rich.style import Style


def colors_enabled(policy: bool | None, stream: Any = None) -> bool:
    """Decide whether our own output should be decorated.

    Args:
        policy: True/False force the decision; None auto-detects
        stream: Stream the text is written to, checked for a TTY
    """
    if policy is not None:
        return policy
    if os.environ.get("NO_COLOR"):
        return False
    isatty = getattr(stream, "isatty", None)
    return bool(isatty and isatty())


def colorize(text: str, style: str, enabled: bool = True) -> str:
    """Wrap text in the ANSI codes for style, or return it unchanged."""
    if not enabled or not text:
        return text
    return Style.parse(style).render(text, color_system=ColorSystem.STANDARD)

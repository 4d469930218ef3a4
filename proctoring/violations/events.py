"""
Browser event mapping

The exam page reports raw window events (visibility changes, context menu,
clipboard, fullscreen, ...). Each recognized event name resolves to exactly
one violation kind.
"""

from typing import Dict, Optional

from .types import ViolationType


BROWSER_EVENT_VIOLATIONS: Dict[str, ViolationType] = {
    "visibility_hidden": ViolationType.TAB_SWITCH,
    "tab_switch": ViolationType.TAB_SWITCH,
    "window_blur": ViolationType.PAGE_BLUR,
    "context_menu": ViolationType.RIGHT_CLICK,
    "copy": ViolationType.COPY_PASTE,
    "cut": ViolationType.COPY_PASTE,
    "paste": ViolationType.COPY_PASTE,
    "keyboard_shortcut": ViolationType.KEYBOARD_SHORTCUT,
    "devtools_open": ViolationType.DEVTOOLS_OPEN,
    "fullscreen_exit": ViolationType.FULLSCREEN_EXIT,
    "new_window": ViolationType.NEW_WINDOW_ATTEMPT,
}


def resolve_browser_event(event_name: str) -> Optional[ViolationType]:
    """Map an event name (case-insensitive, '-' or '_') to its violation kind"""
    if not event_name:
        return None
    key = event_name.strip().lower().replace("-", "_")
    return BROWSER_EVENT_VIOLATIONS.get(key)

"""
Search result presentation helpers.

Used by the semantic search router to decorate each hit with a highlighted
snippet, a relevance bar and a content-type badge.
"""

import math
import re
from typing import Dict, Optional, Union

DEFAULT_HIGHLIGHT_CLASS = (
    "bg-yellow-300/30 text-amber-900 dark:bg-amber-900/40 dark:text-amber-100 rounded px-0.5"
)
DEFAULT_SNIPPET_SEPARATOR = '<div class="my-2 border-t border-zinc-200 dark:border-zinc-800"></div>'
DEFAULT_CONTEXT_RADIUS = 50

_BADGES = {
    "transcript": ("Transcript", "blue"),
    "summary": ("Summary", "purple"),
    "note": ("Note", "green"),
    "conversation": ("Conversation", "amber"),
}


def highlight_text(
    text: str,
    search_term: str,
    case_sensitive: bool = False,
    highlight_class: str = DEFAULT_HIGHLIGHT_CLASS,
    context_radius: Optional[int] = DEFAULT_CONTEXT_RADIUS,
    full_text: bool = False,
    separator: str = DEFAULT_SNIPPET_SEPARATOR,
) -> str:
    """
    Wrap occurrences of ``search_term`` in ``<span class=...>`` tags.

    The term is matched literally (regex metacharacters are escaped).

    Args:
        text: Text to search.
        search_term: Term to highlight. Empty term returns ``text`` unchanged.
        case_sensitive: Match case exactly (default: case-insensitive).
        highlight_class: CSS classes for the wrapping span.
        context_radius: Characters of context kept on each side of a match
            in snippet mode.
        full_text: If True, return the whole text with every match wrapped.
            Otherwise return one snippet per match, joined by ``separator``.
        separator: Markup placed between snippets.

    Returns:
        Highlighted text, joined snippets, or "" when snippet mode finds no
        match.
    """
    if not search_term or not text:
        return text

    flags = 0 if case_sensitive else re.IGNORECASE
    pattern = re.compile(re.escape(search_term), flags)

    def wrap(match_text: str) -> str:
        return f'<span class="{highlight_class}">{match_text}</span>'

    if full_text:
        return pattern.sub(lambda m: wrap(m.group(0)), text)

    radius = context_radius if context_radius is not None else DEFAULT_CONTEXT_RADIUS
    snippets = []
    for match in pattern.finditer(text):
        start = max(0, match.start() - radius)
        end = min(len(text), match.end() + radius)

        before = text[start:match.start()]
        after = text[match.end():end]
        if start > 0:
            before = '...' + before
        if end < len(text):
            after = after + '...'

        snippets.append(f"{before}{wrap(match.group(0))}{after}")

    if not snippets:
        return ''
    return separator.join(snippets)


def get_relevance_indicator(similarity: float) -> Dict[str, Union[int, str]]:
    """
    Map a 0-1 similarity score to relevance-bar values.

    ``percent`` is the rounded score, ``width`` the bar fill clamped to 5..100
    so that weak matches remain visible.
    """
    percent = int(math.floor(similarity * 100 + 0.5))
    width = max(5, min(100, percent))

    if percent >= 80:
        label = "High"
    elif percent >= 60:
        label = "Medium"
    else:
        label = "Low"

    return {"percent": percent, "width": width, "label": label}


def get_content_type_badge(content_type: str) -> Dict[str, str]:
    label, color = _BADGES.get(content_type, (content_type, "gray"))
    return {"label": label, "color": color}


def format_timestamp(value: Union[int, float, str, None]) -> str:
    """Seconds -> "m:ss". Strings that already contain ':' pass through."""
    if value is None:
        return ''

    if isinstance(value, str):
        if ':' in value:
            return value
        try:
            value = float(value)
        except ValueError:
            return ''

    if not math.isfinite(value):
        return ''

    minutes = int(value // 60)
    seconds = int(value % 60)
    return f"{minutes}:{seconds:02d}"

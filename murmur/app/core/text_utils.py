"""Word counting and word-boundary truncation for message text."""

import re

_WHITESPACE = re.compile(r"\s+")


def count_words(text: str) -> int:
    """Count whitespace-separated words.

    Examples:
        >>> count_words("  hello   world\\n")
        2
        >>> count_words("")
        0
    """
    if not text or not isinstance(text, str):
        return 0
    stripped = text.strip()
    if not stripped:
        return 0
    return len(_WHITESPACE.split(stripped))


def exceeds_word_limit(text: str, word_limit: int) -> bool:
    return count_words(text) > word_limit


def truncate_to_words(text: str, max_words: int) -> str:
    """Truncate text to at most max_words words.

    Words are never split. Text within the limit is returned unchanged;
    truncated text is rejoined with single spaces.

    Examples:
        >>> truncate_to_words("one two three", 2)
        'one two'
    """
    if not text or not isinstance(text, str) or max_words <= 0:
        return ""
    words = _WHITESPACE.split(text.strip())
    if len(words) <= max_words:
        return text
    return " ".join(words[:max_words])

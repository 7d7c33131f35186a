"""Keyword screen for submitted text and custom persona guidance."""

import re

PROBLEMATIC_PATTERNS = (
    re.compile(r"\b(hate|kill|die|murder)\b", re.IGNORECASE),
    re.compile(r"\b(nazi|hitler|genocide)\b", re.IGNORECASE),
    re.compile(r"\b(bomb|explosion|terrorist)\b", re.IGNORECASE),
)


def contains_problematic_content(text: str) -> bool:
    return any(pattern.search(text) for pattern in PROBLEMATIC_PATTERNS)

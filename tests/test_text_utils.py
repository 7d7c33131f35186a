"""Tests for word counting and truncation."""

import pytest

from murmur.app.core.text_utils import count_words, exceeds_word_limit, truncate_to_words


@pytest.mark.parametrize(
    "text,expected",
    [
        ("hello world", 2),
        ("  spaced   out\n\ttext  ", 3),
        ("", 0),
        ("   ", 0),
        (None, 0),
    ],
)
def test_count_words(text, expected):
    assert count_words(text) == expected


def test_exceeds_word_limit():
    assert exceeds_word_limit("one two three", 2)
    assert not exceeds_word_limit("one two", 2)


def test_truncate_keeps_whole_words():
    assert truncate_to_words("one two three four", 2) == "one two"


def test_truncate_within_limit_returns_text_unchanged():
    text = "  one\ntwo  "
    assert truncate_to_words(text, 5) is text


def test_truncate_collapses_whitespace_when_cutting():
    assert truncate_to_words("a\n\nb   c d", 3) == "a b c"


def test_truncate_1200_words_to_1000():
    text = " ".join(f"w{i}" for i in range(1200))
    result = truncate_to_words(text, 1000)
    assert count_words(result) == 1000
    assert result.endswith("w999")


@pytest.mark.parametrize("text,limit", [("", 5), ("words here", 0), ("words", -1)])
def test_truncate_degenerate_inputs(text, limit):
    assert truncate_to_words(text, limit) == ""

"""Tests for the fuzzy replace strategies."""

import sys
from pathlib import Path

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from mcode.replace_engine import (
    AmbiguousMatchError,
    IndentationFlexibleStrategy,
    LineTrimmedStrategy,
    NoMatchError,
    NoOpEditError,
    ReplaceError,
    WhitespaceNormalizedStrategy,
    find_candidate,
    remove_indentation,
    replace_in_content,
)


# ── Strategy 1: Exact match ──────────────────────────────────────────

def test_exact_match_unique():
    content = "int x = 1;\nint y = 2;\n"
    result = replace_in_content(content, "int x = 1;", "int x = 100;")
    assert result == "int x = 100;\nint y = 2;\n"


def test_exact_match_is_strategy_one():
    candidate = find_candidate("alpha\nbeta\n", "beta")
    assert candidate.strategy_rank == 1
    assert candidate.literal_text == "beta"
    assert (candidate.start, candidate.end) == (6, 10)


def test_multiline_exact_match():
    content = "def f():\n    return 1\n\ndef g():\n    return 2\n"
    result = replace_in_content(content, "def g():\n    return 2", "def g():\n    return 3")
    assert "return 3" in result
    assert "return 1" in result


# ── Failure modes ────────────────────────────────────────────────────

def test_noop_edit_fails_before_search():
    with pytest.raises(NoOpEditError):
        replace_in_content("anything", "missing", "missing")


def test_noop_edit_is_a_replace_error():
    with pytest.raises(ReplaceError, match="must be different"):
        replace_in_content("", "a", "a")


def test_empty_old_means_creation():
    assert replace_in_content("ignored", "", "new file body") == "new file body"


def test_no_match():
    with pytest.raises(NoMatchError) as exc_info:
        replace_in_content("hello world", "goodbye", "hi")
    assert "not found in content or multiple ambiguous matches" in str(exc_info.value)
    assert not isinstance(exc_info.value, AmbiguousMatchError)


def test_two_occurrences_are_ambiguous():
    content = "x = 1\ny = 2\nx = 1\n"
    with pytest.raises(AmbiguousMatchError) as exc_info:
        replace_in_content(content, "x = 1", "x = 5")
    assert exc_info.value.count == 2


def test_replace_all_replaces_every_occurrence():
    content = "x = 1\ny = 2\nx = 1\n"
    assert replace_in_content(content, "x = 1", "x = 5", replace_all=True) == "x = 5\ny = 2\nx = 5\n"


def test_content_not_mutated_on_failure():
    content = "a\na\n"
    with pytest.raises(ReplaceError):
        replace_in_content(content, "a", "b")
    assert content == "a\na\n"


# ── Strategy 2: Line trimmed ─────────────────────────────────────────

def test_leading_whitespace_difference():
    content = "class A:\n    def run(self):\n        return 1\n"
    result = replace_in_content(content, "def run(self):\nreturn 1", "    def run(self):\n        return 2")
    assert result == "class A:\n    def run(self):\n        return 2\n"


def test_trailing_whitespace_in_file():
    content = "int x = 1;   \nint y = 2;  \n"
    candidate = find_candidate(content, "int x = 1;\nint y = 2;")
    assert candidate.strategy_rank == 2
    assert candidate.literal_text == "int x = 1;   \nint y = 2;  "


def test_line_trimmed_ignores_trailing_empty_search_line():
    content = "    first\n    second\nthird\n"
    matches = LineTrimmedStrategy().find(content, "first\nsecond\n")
    assert matches == ["    first\n    second"]


def test_line_trimmed_recovers_original_span_offsets():
    content = "a\n  b  \n  c\nd"
    (literal,) = LineTrimmedStrategy().find(content, "b\nc")
    assert content.index(literal) == 2
    assert literal == "  b  \n  c"


# ── Strategy 3: Whitespace normalized ────────────────────────────────

def test_whitespace_runs_collapsed():
    content = "result = compute(a,   b,\tc)\n"
    candidate = find_candidate(content, "result = compute(a, b, c)")
    assert candidate.strategy_rank == 3
    assert replace_in_content(content, "result = compute(a, b, c)", "result = 0") == "result = 0\n"


def test_whitespace_normalized_multiline_block():
    content = "if  (x)\n{   y();  }\n"
    matches = WhitespaceNormalizedStrategy().find(content, "if (x)\n{ y(); }")
    assert "if  (x)\n{   y();  }" in matches


# ── Strategy 4: Indentation flexible ─────────────────────────────────

def test_remove_indentation_keeps_relative_structure():
    text = "        if x:\n            y()\n"
    assert remove_indentation(text) == "if x:\n    y()\n"


def test_indentation_flexible_block():
    content = "def outer():\n    if ready:\n        go()\n    done()\n"
    matches = IndentationFlexibleStrategy().find(content, "if ready:\n    go()")
    assert matches == ["    if ready:\n        go()"]


def test_first_usable_strategy_wins():
    # Line-trimmed finds a unique block before indentation-flexible is tried
    content = "    value = 1\n    other = 2\n"
    candidate = find_candidate(content, "value = 1\nother = 2")
    assert candidate.strategy_rank == 2


def test_fuzzy_ambiguity_falls_through_to_error():
    content = "  x = 1\n  x = 1\n"
    with pytest.raises(ReplaceError):
        replace_in_content(content, "x = 1\n", "x = 2\n")

"""Tests for the windowed diff renderer."""

import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from mcode.diff_renderer import (
    CONTEXT_LINES,
    ELLIPSIS,
    NO_CHANGES,
    RULE,
    colorize_diff,
    compute_opcodes,
    generate_diff,
    generate_focused_diff,
    render_diff,
)


def numbered(n: int) -> str:
    return "\n".join(f"line {i}" for i in range(1, n + 1))


def body(diff: str):
    """Rendered lines after the header and rule."""
    return diff.rstrip("\n").split("\n")[2:]


def context_lines(diff: str):
    return [l for l in body(diff) if l.startswith(" ") and l != ELLIPSIS]


def test_identical_content_renders_sentinel():
    diff = generate_diff("same\n", "same\n", "a.txt")
    lines = diff.rstrip("\n").split("\n")
    assert lines == ["📝 File changes: a.txt", RULE, NO_CHANGES]


def test_opcodes_cover_both_sequences():
    old = ["a", "b", "c", "d"]
    new = ["a", "x", "c", "d", "e"]
    ops = compute_opcodes(old, new)
    assert ops[0].i1 == 0 and ops[0].j1 == 0
    assert ops[-1].i2 == len(old) and ops[-1].j2 == len(new)
    for prev, nxt in zip(ops, ops[1:]):
        assert prev.i2 == nxt.i1 and prev.j2 == nxt.j1
    assert [op.tag for op in ops] == ["equal", "replace", "equal", "insert"]


def test_single_change_in_large_file_is_windowed():
    old = numbered(100)
    new = old.replace("line 50", "line fifty")
    diff = generate_diff(old, new, "big.txt")
    lines = body(diff)

    assert len(context_lines(diff)) <= 2 * CONTEXT_LINES + 1
    assert lines.count(ELLIPSIS) == 2
    assert lines[0] == ELLIPSIS and lines[-1] == ELLIPSIS
    assert "-  50      │ line 50" in lines
    assert "+       50 │ line fifty" in lines


def test_context_line_format_shows_both_numbers():
    old = "a\nb\nc\n"
    new = "a\nB\nc\n"
    lines = body(generate_diff(old, new, "f"))
    assert "    1    1 │ a" in lines
    assert "    3    3 │ c" in lines


def test_change_at_first_line_has_no_leading_ellipsis():
    old = numbered(20)
    new = old.replace("line 1\n", "first\n", 1)
    lines = body(generate_diff(old, new, "f"))
    assert lines[0].startswith("-   1")
    assert lines[-1] == ELLIPSIS


def test_change_at_last_line_has_no_trailing_ellipsis():
    old = numbered(20)
    new = old.replace("line 20", "last")
    lines = body(generate_diff(old, new, "f"))
    assert lines[0] == ELLIPSIS
    assert lines[-1] == "+       20 │ last"


def test_long_gap_between_changes_is_split():
    old_lines = [f"l{i}" for i in range(1, 31)]
    new_lines = list(old_lines)
    new_lines[4] = "changed 5"
    new_lines[24] = "changed 25"
    lines = body(generate_diff("\n".join(old_lines), "\n".join(new_lines), "f"))
    # 3 after the first change, ellipsis, 3 before the second
    middle = lines[lines.index("+        5 │ changed 5") + 1:lines.index("-  25      │ l25")]
    assert len(middle) == 2 * CONTEXT_LINES + 1
    assert middle[CONTEXT_LINES] == ELLIPSIS


def test_short_gap_between_changes_shown_whole():
    old = "a\nb\nc\nd\ne"
    new = "A\nb\nc\nd\nE"
    lines = body(generate_diff(old, new, "f"))
    assert ELLIPSIS not in lines
    assert len(context_lines("\n".join(["h", "r"] + lines))) == 3


def test_deletion_and_insertion_markers():
    old = "keep\ndrop\nkeep2"
    new = "keep\nkeep2\nadded"
    lines = body(generate_diff(old, new, "f"))
    assert "-   2      │ drop" in lines
    assert "+        3 │ added" in lines


def test_inputs_are_not_mutated():
    old = "x\ny\n"
    new = "x\nz\n"
    generate_diff(old, new, "f")
    assert old == "x\ny\n" and new == "x\nz\n"


def test_creation_diff_from_empty():
    lines = body(generate_diff("", "hello\nworld", "new.txt"))
    assert "+        1 │ hello" in lines
    assert "+        2 │ world" in lines


def test_focused_diff_header_truncates_snippets():
    long_old = "o" * 200
    diff = generate_focused_diff("a " + long_old, "a b", "f.py", long_old, "b")
    first, second, removed, added = diff.split("\n")[:4]
    assert first == "📝 Incremental edit applied to: f.py"
    assert second == "🔄 Changes:"
    assert removed == "  - Removed: " + repr("o" * 77 + "...")
    assert added == "  + Added: 'b'"
    assert "📝 File changes: f.py" in diff


def test_colorize_styles_removed_and_added_lines():
    text = colorize_diff(generate_diff("a\nb", "a\nc", "f"))
    styles = {span.style for span in text.spans}
    assert "red" in styles
    assert "green" in styles


def test_render_diff_styles_header_and_rule():
    text = render_diff("a", "b", "f")
    assert text.plain.startswith("📝 File changes: f\n" + RULE)
    styles = {span.style for span in text.spans}
    assert {"bold cyan", "blue", "red", "green"} <= styles

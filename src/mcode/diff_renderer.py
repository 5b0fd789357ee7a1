"""Windowed line diffs for file edits.

The edit script comes from difflib's opcodes. Only CONTEXT_LINES unchanged
lines are kept next to each change, so the rendered size follows the number
of changed regions rather than the file length.
"""

import difflib
from dataclasses import dataclass
from typing import Iterator, List

from rich.text import Text

CONTEXT_LINES = 3
NO_CHANGES = "No changes"
HEADER_PREFIX = "📝 File changes: "
RULE = "=" * 60
ELLIPSIS = "      ...  │ "


@dataclass(frozen=True)
class DiffOpcode:
    """One span of the edit script, half-open ranges into each side."""

    tag: str  # "equal", "replace", "delete", "insert"
    i1: int
    i2: int
    j1: int
    j2: int

    @property
    def is_change(self) -> bool:
        return self.tag != "equal"


def compute_opcodes(old_lines: List[str], new_lines: List[str]) -> List[DiffOpcode]:
    """Return the edit script turning ``old_lines`` into ``new_lines``."""
    matcher = difflib.SequenceMatcher(None, old_lines, new_lines, autojunk=False)
    return [DiffOpcode(*op) for op in matcher.get_opcodes()]


def _context(old_lines: List[str], op: DiffOpcode, start: int, stop: int) -> Iterator[str]:
    for i in range(start, stop):
        new_num = op.j1 + (i - op.i1) + 1
        yield f" {i + 1:4d} {new_num:4d} │ {old_lines[i]}"


def iter_diff_lines(old: str, new: str, label: str) -> Iterator[str]:
    """Yield the rendered diff line by line."""
    yield HEADER_PREFIX + label
    yield RULE

    if old == new:
        yield NO_CHANGES
        return

    old_lines = old.split("\n")
    new_lines = new.split("\n")
    opcodes = compute_opcodes(old_lines, new_lines)
    changes = [op for op in opcodes if op.is_change]

    first_shown = max(0, changes[0].i1 - CONTEXT_LINES) if changes else len(old_lines)
    if first_shown > 0:
        yield ELLIPSIS

    last = len(opcodes) - 1
    for idx, op in enumerate(opcodes):
        if op.tag == "equal":
            before, after = idx > 0, idx < last
            if before and after:
                if op.i2 - op.i1 > CONTEXT_LINES * 2:
                    yield from _context(old_lines, op, op.i1, op.i1 + CONTEXT_LINES)
                    yield ELLIPSIS
                    yield from _context(old_lines, op, op.i2 - CONTEXT_LINES, op.i2)
                else:
                    yield from _context(old_lines, op, op.i1, op.i2)
            elif before:
                yield from _context(old_lines, op, op.i1, min(op.i1 + CONTEXT_LINES, op.i2))
            elif after:
                yield from _context(old_lines, op, max(op.i2 - CONTEXT_LINES, op.i1), op.i2)
            continue

        if op.tag in ("replace", "delete"):
            for i in range(op.i1, op.i2):
                yield f"-{i + 1:4d}      │ {old_lines[i]}"
        if op.tag in ("replace", "insert"):
            for j in range(op.j1, op.j2):
                yield f"+     {j + 1:4d} │ {new_lines[j]}"

    last_shown = min(len(old_lines) - 1, changes[-1].i2 + CONTEXT_LINES - 1) if changes else -1
    if last_shown < len(old_lines) - 1:
        yield ELLIPSIS


def generate_diff(old: str, new: str, label: str) -> str:
    """Plain-text diff used as the tool result."""
    return "".join(line + "\n" for line in iter_diff_lines(old, new, label))


def truncate_snippet(text: str, max_length: int = 80) -> str:
    if len(text) <= max_length:
        return text
    return text[:max_length - 3] + "..."


def generate_focused_diff(old: str, new: str, label: str, old_string: str, new_string: str) -> str:
    """Edit summary followed by the windowed diff."""
    return (
        f"📝 Incremental edit applied to: {label}\n"
        "🔄 Changes:\n"
        f"  - Removed: {truncate_snippet(old_string)!r}\n"
        f"  + Added: {truncate_snippet(new_string)!r}\n"
        "\n" + generate_diff(old, new, label)
    )


def _line_style(line: str) -> str:
    if line.startswith(HEADER_PREFIX) or line.startswith("📝"):
        return "bold cyan"
    if line == RULE:
        return "blue"
    if line == ELLIPSIS:
        return "dim"
    if line.startswith("-") and "│" in line:
        return "red"
    if line.startswith("+") and "│" in line:
        return "green"
    return ""


def colorize_diff(text: str) -> Text:
    """Style a rendered diff (or a tool result containing one) for the console."""
    styled = Text()
    for line in text.rstrip("\n").split("\n"):
        styled.append(line, style=_line_style(line))
        styled.append("\n")
    return styled


def render_diff(old: str, new: str, label: str) -> Text:
    return colorize_diff(generate_diff(old, new, label))

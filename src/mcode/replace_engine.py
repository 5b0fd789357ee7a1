"""Fuzzy locate-and-replace for file edits.

The model rarely reproduces the text it wants to change byte for byte:
indentation drifts, trailing spaces disappear, runs of whitespace get
collapsed. ``replace_in_content`` tries a fixed sequence of matching
strategies, from strict to permissive, and stops at the first one that
yields a usable candidate. A candidate is always a literal substring of
the original content, so the substitution itself is exact even when the
search was fuzzy.

Strategies, in priority order:
    1. ExactStrategy                 literal containment
    2. LineTrimmedStrategy           per-line strip() comparison
    3. WhitespaceNormalizedStrategy  whitespace runs collapsed to one space
    4. IndentationFlexibleStrategy   common leading indentation removed

A candidate is usable when ``replace_all`` is set or when its literal text
occurs exactly once in the content. The first strategy with a usable
candidate wins, even if a later strategy would also match uniquely.
"""

import re
from dataclasses import dataclass
from typing import List, Optional

from .logger import get_logger

log = get_logger("replace_engine")

_WHITESPACE_RUN = re.compile(r"\s+")


class ReplaceError(ValueError):
    """Base class for edit failures reported back to the model."""


class NoOpEditError(ReplaceError):
    def __init__(self):
        super().__init__("oldString and newString must be different")


class NoMatchError(ReplaceError):
    def __init__(self):
        super().__init__("oldString not found in content or multiple ambiguous matches found")


class AmbiguousMatchError(NoMatchError):
    """Every candidate found occurs more than once and replace_all is off."""

    def __init__(self, literal: str, count: int):
        super().__init__()
        self.literal = literal
        self.count = count


@dataclass(frozen=True)
class MatchCandidate:
    """A literal span of the original content selected for replacement."""

    strategy_rank: int
    literal_text: str
    start: int
    end: int


class MatchStrategy:
    """Base class: subclasses return the literal substrings they match."""

    name = "base"
    rank = 0

    def find(self, content: str, pattern: str) -> List[str]:
        raise NotImplementedError

    def candidates(self, content: str, pattern: str) -> List[MatchCandidate]:
        found = []
        for literal in self.find(content, pattern):
            start = content.find(literal) if literal else -1
            if start == -1:
                continue
            found.append(MatchCandidate(self.rank, literal, start, start + len(literal)))
        return found


class ExactStrategy(MatchStrategy):
    name = "exact"
    rank = 1

    def find(self, content: str, pattern: str) -> List[str]:
        return [pattern] if pattern in content else []


class LineTrimmedStrategy(MatchStrategy):
    """Compare line by line with surrounding whitespace stripped."""

    name = "line_trimmed"
    rank = 2

    def find(self, content: str, pattern: str) -> List[str]:
        original_lines = content.split("\n")
        search_lines = pattern.split("\n")
        if search_lines and search_lines[-1] == "":
            search_lines = search_lines[:-1]
        if not search_lines:
            return []

        stripped = [line.strip() for line in search_lines]
        for i in range(len(original_lines) - len(search_lines) + 1):
            if all(original_lines[i + j].strip() == stripped[j] for j in range(len(search_lines))):
                # Offsets into the original text; +1 for each newline consumed
                start = sum(len(line) + 1 for line in original_lines[:i])
                end = start + sum(len(line) for line in original_lines[i:i + len(search_lines)])
                end += len(search_lines) - 1
                return [content[start:end]]
        return []


def normalize_whitespace(text: str) -> str:
    return _WHITESPACE_RUN.sub(" ", text.strip())


class WhitespaceNormalizedStrategy(MatchStrategy):
    """Collapse whitespace runs before comparing, per line and per block."""

    name = "whitespace_normalized"
    rank = 3

    def find(self, content: str, pattern: str) -> List[str]:
        target = normalize_whitespace(pattern)
        lines = content.split("\n")
        matches = [line for line in lines if normalize_whitespace(line) == target]

        pattern_lines = pattern.split("\n")
        width = len(pattern_lines)
        if width > 1:
            for i in range(len(lines) - width + 1):
                block = "\n".join(lines[i:i + width])
                if normalize_whitespace(block) == target:
                    matches.append(block)
        return matches


def remove_indentation(text: str) -> str:
    """Strip the smallest leading indentation shared by the non-blank lines."""
    lines = text.split("\n")
    non_blank = [line for line in lines if line.strip()]
    if not non_blank:
        return text

    min_indent = min(len(line) - len(line.lstrip(" \t")) for line in non_blank)
    result = []
    for line in lines:
        if line.strip() and len(line) > min_indent:
            result.append(line[min_indent:])
        else:
            result.append(line)
    return "\n".join(result)


class IndentationFlexibleStrategy(MatchStrategy):
    name = "indentation_flexible"
    rank = 4

    def find(self, content: str, pattern: str) -> List[str]:
        target = remove_indentation(pattern)
        lines = content.split("\n")
        width = len(pattern.split("\n"))
        matches = []
        for i in range(len(lines) - width + 1):
            block = "\n".join(lines[i:i + width])
            if remove_indentation(block) == target:
                matches.append(block)
        return matches


STRATEGIES: List[MatchStrategy] = [
    ExactStrategy(),
    LineTrimmedStrategy(),
    WhitespaceNormalizedStrategy(),
    IndentationFlexibleStrategy(),
]


def is_usable(content: str, literal: str, replace_all: bool) -> bool:
    if replace_all:
        return True
    return content.find(literal) == content.rfind(literal)


def find_candidate(content: str, old: str, replace_all: bool = False) -> MatchCandidate:
    """Return the first usable candidate across strategies.

    Raises AmbiguousMatchError when candidates exist but none is unique,
    NoMatchError when nothing matched at all.
    """
    ambiguous: Optional[MatchCandidate] = None
    for strategy in STRATEGIES:
        for candidate in strategy.candidates(content, old):
            if is_usable(content, candidate.literal_text, replace_all):
                log.debug(
                    "Strategy %s matched %d chars at %d",
                    strategy.name, len(candidate.literal_text), candidate.start,
                )
                return candidate
            if ambiguous is None:
                ambiguous = candidate

    if ambiguous is not None:
        raise AmbiguousMatchError(ambiguous.literal_text, content.count(ambiguous.literal_text))
    raise NoMatchError()


def replace_in_content(content: str, old: str, new: str, replace_all: bool = False) -> str:
    """Replace ``old`` with ``new`` in ``content`` using the strategy cascade.

    An empty ``old`` means file creation: ``new`` is returned as-is.
    """
    if old == new:
        raise NoOpEditError()
    if old == "":
        return new

    candidate = find_candidate(content, old, replace_all)
    if replace_all:
        return content.replace(candidate.literal_text, new)
    return content[:candidate.start] + new + content[candidate.end:]

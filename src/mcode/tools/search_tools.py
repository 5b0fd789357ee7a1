"""Recursive text search."""

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Pattern

from ..logger import get_logger

log = get_logger("tools.search")

MAX_RESULTS = 500


@dataclass
class SearchMatch:
    """A single matching line."""

    file_path: str
    line_number: int
    line_content: str

    def to_line(self) -> str:
        return f"{self.file_path}:{self.line_number}: {self.line_content}"


def compile_pattern(pattern: str) -> Pattern:
    """Compile ``pattern`` as a regex, falling back to a literal match if it is invalid."""
    try:
        return re.compile(pattern)
    except re.error:
        log.debug("Invalid regex %r, searching literally", pattern)
        return re.compile(re.escape(pattern))


def find_matches(pattern: str, directory: str = ".", max_results: int = MAX_RESULTS) -> List[SearchMatch]:
    """Walk ``directory`` and collect matching lines, skipping hidden and binary files."""
    root = Path(directory)
    if not root.exists():
        raise FileNotFoundError(f"Directory not found: {directory}")

    regex = compile_pattern(pattern)
    if root.is_file():
        files = [str(root)]
    else:
        files = []
        for current, dirs, names in os.walk(root):
            dirs[:] = sorted(d for d in dirs if not d.startswith("."))
            files.extend(os.path.join(current, n) for n in sorted(names) if not n.startswith("."))

    results: List[SearchMatch] = []
    for file_path in files:
        try:
            with open(file_path, "r", encoding="utf-8") as f:
                for number, line in enumerate(f, 1):
                    if regex.search(line):
                        results.append(SearchMatch(file_path, number, line.rstrip("\n")))
                        if len(results) >= max_results:
                            return results
        except (UnicodeDecodeError, OSError):
            continue
    return results


def search_code(pattern: str, directory: str = ".") -> str:
    """Search files under ``directory``; an empty result is not an error."""
    matches = find_matches(pattern, directory)
    log.info("search %r in %s -> %d matches", pattern, directory, len(matches))
    lines = [m.to_line() for m in matches]
    if len(matches) >= MAX_RESULTS:
        lines.append(f"... (stopped after {MAX_RESULTS} matches)")
    return "\n".join(lines)

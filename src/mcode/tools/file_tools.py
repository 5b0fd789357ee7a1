"""File operation tools."""

import os
from pathlib import Path
from typing import Optional

import aiofiles

from ..diff_renderer import generate_diff, generate_focused_diff
from ..logger import get_logger
from ..replace_engine import ReplaceError, replace_in_content

log = get_logger("tools.file")


async def _read_text(path: Path) -> str:
    async with aiofiles.open(path, "r", encoding="utf-8", errors="replace") as f:
        return await f.read()


async def _write_text(path: Path, content: str) -> None:
    if path.parent and not path.parent.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
    async with aiofiles.open(path, "w", encoding="utf-8") as f:
        await f.write(content)


async def _read_existing(path: Path) -> str:
    """Current file content, or empty if the file does not exist yet."""
    if not path.is_file():
        return ""
    return await _read_text(path)


async def read_file(path: str) -> str:
    """Read the whole content of a file.

    Args:
        path: Path to the file to read.

    Returns:
        File content as a string.
    """
    file_path = Path(path)
    if not file_path.exists():
        raise FileNotFoundError(f"error reading file: {path} does not exist")
    if file_path.is_dir():
        raise IsADirectoryError(f"error reading file: {path} is a directory")
    return await _read_text(file_path)


def list_files(path: str = ".") -> str:
    """List the immediate children of a directory.

    Directories carry a trailing ``/`` so they stand apart from files.
    """
    dir_path = Path(path)
    if not dir_path.is_dir():
        raise NotADirectoryError(f"error listing directory: {path} is not a directory")
    entries = []
    for entry in sorted(os.scandir(dir_path), key=lambda e: e.name):
        entries.append(entry.name + "/" if entry.is_dir() else entry.name)
    return "\n".join(entries)


async def edit_file(
    path: str,
    old_string: Optional[str] = None,
    new_string: Optional[str] = None,
    replace_all: bool = False,
    content: Optional[str] = None,
) -> str:
    """Create or edit a file.

    Three modes, checked in order:
        old_string + new_string  targeted replacement through the replace engine
        new_string only          create the file (parents included)
        content                  rewrite the whole file

    Returns:
        A rendered diff or a creation message.
    """
    file_path = Path(path)

    if old_string is not None:
        if new_string is None:
            raise ValueError("new_string parameter is required when using old_string")
        if old_string == "":
            return await _create(file_path, new_string)
        if not file_path.is_file():
            raise FileNotFoundError(f"error reading file: {path} does not exist")
        original = await _read_text(file_path)
        try:
            updated = replace_in_content(original, old_string, new_string, bool(replace_all))
        except ReplaceError as e:
            log.info("Edit of %s rejected: %s", path, e)
            raise ReplaceError(f"replacement failed: {e}") from e
        await _write_text(file_path, updated)
        return generate_focused_diff(original, updated, path, old_string, new_string)

    if new_string is not None:
        return await _create(file_path, new_string)

    if content is not None:
        original = await _read_existing(file_path)
        await _write_text(file_path, content)
        if not original:
            return f"File {path} has been created"
        if original == content:
            return f"File {path} unchanged"
        return f"File {path} has been modified\n\n" + generate_diff(original, content, path)

    raise ValueError(
        "either new_string (for new files) or old_string+new_string (for edits) "
        "or content (for full replacement) must be provided"
    )


async def _create(file_path: Path, text: str) -> str:
    await _write_text(file_path, text)
    log.info("Created %s (%d chars)", file_path, len(text))
    return f"File {file_path} has been created"


async def preview_edit(path: str, content: str) -> str:
    """Show the diff a full rewrite would produce, without writing."""
    file_path = Path(path)
    original = await _read_existing(file_path)
    if original == content:
        return f"Preview: No changes would be made to {path}"
    diff = generate_diff(original, content, path)
    if not original:
        return f"Preview: Would create new file {path}\n\n{diff}"
    return f"Preview: Would modify file {path}\n\n{diff}"

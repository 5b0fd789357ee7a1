"""Tool definitions and the default dispatcher."""

from typing import Optional

from .registry import READ_ONLY_TOOLS, Tool, ToolDispatcher, ToolName, ToolResult
from .file_tools import edit_file, list_files, preview_edit, read_file
from .search_tools import search_code
from .shell_tools import CommandError, is_long_running, run_shell_command, start_background


def build_dispatcher(command_timeout: float = 30.0, cwd: Optional[str] = None) -> ToolDispatcher:
    """Register every tool on a fresh dispatcher."""
    dispatcher = ToolDispatcher()
    register = dispatcher.register_function

    register(
        ToolName.READ_FILE,
        "Read the contents of a file",
        {"path": {"type": "string", "description": "Path to the file to read"}},
        required=["path"],
    )(read_file)

    register(
        ToolName.LIST_FILES,
        "List files in a directory. Directories end with '/'.",
        {"path": {"type": "string", "description": "Directory path to list (default: current directory)"}},
    )(list_files)

    @register(
        ToolName.BASH_COMMAND,
        f"Execute a bash command. Commands are killed after {command_timeout:g} seconds.",
        {"command": {"type": "string", "description": "Command to execute"}},
        required=["command"],
    )
    async def bash_command(command: str) -> str:
        result = await run_shell_command(command, timeout=command_timeout, cwd=cwd)
        if result.timed_out or result.return_code:
            raise CommandError(result.to_text(command_timeout))
        return result.output

    @register(
        ToolName.BASH_BACKGROUND,
        "Start a long-running bash command without waiting for it",
        {"command": {"type": "string", "description": "Command to start"}},
        required=["command"],
        advertised=False,
    )
    def bash_background(command: str) -> str:
        return start_background(command, cwd=cwd)

    register(
        ToolName.EDIT_FILE,
        "Perform incremental edits to a file using find-and-replace. "
        "For new files, give new_string only. For edits, give old_string and new_string; "
        "old_string must match a unique span of the file (whitespace and indentation "
        "differences are tolerated). Use content only to rewrite a whole file.",
        {
            "path": {"type": "string", "description": "Path to the file to create or modify"},
            "old_string": {"type": "string", "description": "The text to replace"},
            "new_string": {"type": "string", "description": "The replacement text, or the content of a new file"},
            "replace_all": {
                "type": "boolean",
                "description": "Replace every occurrence of old_string (default: false, requires a unique match)",
            },
            "content": {"type": "string", "description": "Full new file content (slow fallback)"},
        },
        required=["path"],
    )(edit_file)

    register(
        ToolName.PREVIEW_EDIT,
        "Show the diff that writing content to a file would produce, without writing it",
        {
            "path": {"type": "string", "description": "Path to the file"},
            "content": {"type": "string", "description": "Proposed full file content"},
        },
        required=["path", "content"],
    )(preview_edit)

    register(
        ToolName.SEARCH_CODE,
        "Search for a regex pattern in files under a directory",
        {
            "pattern": {"type": "string", "description": "Pattern to search for"},
            "directory": {"type": "string", "description": "Directory to search in (default: current directory)"},
        },
        required=["pattern"],
    )(search_code)

    return dispatcher


__all__ = [
    "CommandError",
    "READ_ONLY_TOOLS",
    "Tool",
    "ToolDispatcher",
    "ToolName",
    "ToolResult",
    "build_dispatcher",
    "is_long_running",
]

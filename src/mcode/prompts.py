"""System prompt for the coding agent."""

import os
import platform

from .logger import get_logger

_log = get_logger("prompts")

BASE_PROMPT = """You are a helpful coding agent. You have access to tools that allow you to:
- Read, create and edit files
- Execute bash commands
- List directory contents
- Search for code patterns

Use these tools to help the user with their coding tasks. Always be clear about what you're doing and why.

When editing an existing file, prefer edit_file with old_string/new_string: copy a span of the file \
that occurs only once and give its replacement. Read the file first if you are unsure of its content.

Working directory: {cwd}
Operating system: {os_name}"""


def get_system_prompt(agents_md: str = "", cwd: str = "") -> str:
    """Build the system prompt, embedding AGENTS.md when the project has one."""
    prompt = BASE_PROMPT.format(cwd=cwd or os.getcwd(), os_name=platform.system())
    if agents_md.strip():
        _log.debug("Embedding AGENTS.md (%d chars)", len(agents_md))
        prompt += (
            "\n\n--- PROJECT CONTEXT (AGENTS.md) ---\n"
            f"{agents_md}\n"
            "--- END PROJECT CONTEXT ---\n\n"
            "IMPORTANT: Pay special attention to any 'Permanent Instructions' in the project "
            "context above and follow them consistently."
        )
    return prompt

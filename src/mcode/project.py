"""Project context kept in AGENTS.md, plus conversation export."""

from datetime import datetime
from pathlib import Path
from typing import Optional

from .logger import get_logger
from .session import Session

log = get_logger("project")

AGENTS_FILE = "AGENTS.md"
PERMANENT_HEADER = "### Permanent Instructions"
PLACEHOLDER = "*Use #command"

BASIC_TEMPLATE = """# {name} - AI Agent Instructions

## Project Overview
**Project Name:** {name}
**Location:** {cwd}
**Initialized:** {timestamp}

## Project Structure
*Document your project structure and key files here*

## Development Guidelines
*Add project-specific coding standards, patterns, and conventions here*

## AI Agent Instructions

### Permanent Instructions
*Use #command to add permanent instructions for AI agents working on this project*

### Project Context
*Key information about this project that AI agents should know*
"""


def agents_path(root: Optional[Path] = None) -> Path:
    return (root or Path.cwd()) / AGENTS_FILE


def load_agents_md(root: Optional[Path] = None) -> str:
    """AGENTS.md content, or empty string when the project has none."""
    path = agents_path(root)
    if not path.is_file():
        return ""
    try:
        return path.read_text(encoding="utf-8")
    except OSError as e:
        log.warning("Failed to read %s: %s", path, e)
        return ""


def create_basic_agents_md(root: Optional[Path] = None) -> Path:
    """Write the starter AGENTS.md template and return its path."""
    root = (root or Path.cwd()).resolve()
    path = agents_path(root)
    path.write_text(
        BASIC_TEMPLATE.format(
            name=root.name,
            cwd=root,
            timestamp=datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        ),
        encoding="utf-8",
    )
    log.info("Created %s", path)
    return path


def insert_instruction(content: str, instruction: str) -> str:
    """Add ``instruction`` as a bullet under the Permanent Instructions section.

    The bullet goes after the last existing one, replaces the template
    placeholder, or opens the section if the document has none.
    """
    bullet = f"- {instruction}"
    lines = content.split("\n")
    header = next((i for i, line in enumerate(lines) if line.strip() == PERMANENT_HEADER), None)

    if header is None:
        last_section = content.rfind("\n### ")
        if last_section == -1:
            return content + f"\n\n## AI Agent Instructions\n\n{PERMANENT_HEADER}\n{bullet}\n"
        return content[:last_section] + f"\n{PERMANENT_HEADER}\n{bullet}\n" + content[last_section:]

    end = next((i for i in range(header + 1, len(lines)) if lines[i].startswith("### ")), len(lines))
    bullets = [i for i in range(header + 1, end) if lines[i].lstrip().startswith("- ")]
    placeholder = next((i for i in range(header + 1, end) if lines[i].startswith(PLACEHOLDER)), None)

    if bullets:
        lines.insert(bullets[-1] + 1, bullet)
    elif placeholder is not None:
        lines[placeholder] = bullet
    else:
        lines.insert(header + 1, bullet)
    return "\n".join(lines)


def add_permanent_instruction(instruction: str, root: Optional[Path] = None) -> Path:
    """Record an instruction in AGENTS.md, creating the file if needed."""
    path = agents_path(root)
    if not path.is_file():
        create_basic_agents_md(root)
    content = path.read_text(encoding="utf-8")
    path.write_text(insert_instruction(content, instruction.strip()), encoding="utf-8")
    log.info("Added permanent instruction: %s", instruction)
    return path


def export_filename(name: Optional[str] = None) -> str:
    if not name:
        return "context.txt"
    return name if name.endswith(".txt") else name + ".txt"


def format_export(session: Session) -> str:
    parts = [
        "# MCode CLI Context Export\n",
        f"Exported: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n",
    ]
    if session.last_usage:
        parts.append(f"Context Tokens: {session.last_usage.prompt_tokens}\n")
        parts.append(f"Total Session Tokens: {session.total_tokens_used}\n")
    parts.append("\n" + "=" * 80 + "\n\n")

    labels = {
        "system": "🔧 SYSTEM MESSAGE:",
        "user": "👤 USER:",
        "assistant": "🤖 ASSISTANT:",
        "tool": "⚙️ TOOL RESULT:",
    }
    for i, msg in enumerate(session.messages):
        if i > 0:
            parts.append("\n" + "-" * 40 + "\n\n")
        parts.append(labels.get(msg.role, msg.role.upper() + ":") + "\n")
        if msg.content:
            parts.append(msg.content + "\n")
        for call in msg.tool_calls:
            parts.append(f"\n🔧 TOOL CALL: {call.name}\n")
            parts.append(f"Arguments: {call.arguments}\n")

    parts.append("\n" + "=" * 80 + "\n")
    parts.append(f"End of context export ({len(session.messages)} messages)\n")
    return "".join(parts)


def export_context(session: Session, filename: Optional[str] = None, root: Optional[Path] = None) -> Path:
    """Write a readable transcript of the conversation."""
    path = (root or Path.cwd()) / export_filename(filename)
    path.write_text(format_export(session), encoding="utf-8")
    log.info("Exported %d messages to %s", len(session.messages), path)
    return path

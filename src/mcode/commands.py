"""Slash commands and #-instructions typed at the REPL prompt."""

from pathlib import Path
from typing import Callable, List, Optional

from rich.console import Console
from rich.text import Text

from .agent import Agent
from .logger import get_logger
from .project import add_permanent_instruction, agents_path, create_basic_agents_md, export_context

log = get_logger("commands")

COMMANDS = ["/exit", "/quit", "/init", "/new", "/export", "/models", "/permissions", "/help"]

HELP_TEXT = """
[bold]🤖 MCode - Help[/bold]

[bold]Slash Commands:[/bold]
  /init        - Initialize project and create AGENTS.md
  /new         - Clear conversation context (start fresh)
  /export      - Export conversation context to text file
  /models      - List or switch between available models
  /permissions - Manage folder permissions
  /exit        - Exit the agent
  /help        - Show this help message

[bold]Available Tools:[/bold]
  📖 read_file    - Read file contents
  📁 list_files   - List directory contents
  ⚡ bash_command - Execute shell commands
  ✏️  edit_file    - Create/modify files (shows colored diffs)
  👀 preview_edit - Show the diff of a rewrite without writing
  🔍 search_code  - Search for code patterns

[bold]Usage:[/bold]
  - Type natural language requests for coding tasks
  - Review and approve tool executions (Y/n/s/i/b)
    • Y/Enter: Execute tool (default)
    • n: Deny execution
    • s: Skip execution
    • i: Interrupt and provide alternative instruction
    • b: Background execution (for long-running commands)
  - Use # to add permanent instructions to AGENTS.md
    Example: #always use python3 instead of python
"""


class CommandHandler:
    """Handles REPL input that is not a message for the model."""

    def __init__(
        self,
        agent: Agent,
        console: Console,
        ask: Callable[[str], str],
        project_root: Optional[Path] = None,
    ):
        self.agent = agent
        self.console = console
        self.ask = ask
        self.project_root = project_root

    def handle(self, line: str) -> bool:
        """Run a slash command or #-instruction. Returns True when the REPL should exit."""
        if line.startswith("#"):
            self.add_instruction(line[1:])
            return False

        parts = line.split()
        if not parts:
            return False
        name, args = parts[0], parts[1:]

        if name in ("/exit", "/quit"):
            self.console.print("👋 Goodbye!")
            return True
        if name == "/init":
            self.init_project()
        elif name == "/new":
            self.clear_context()
        elif name == "/export":
            self.export(args)
        elif name == "/models":
            self.models(args)
        elif name == "/permissions":
            self.permissions(args)
        elif name == "/help":
            self.console.print(HELP_TEXT)
        else:
            self.console.print(Text(f"❌ Unknown command: {name}", style="red"))
            self.console.print("Available commands: " + ", ".join(c for c in COMMANDS if c != "/quit"))
        return False

    def add_instruction(self, instruction: str) -> None:
        instruction = instruction.strip()
        if not instruction:
            self.console.print("[yellow]Usage: #<instruction>[/yellow]")
            return
        try:
            path = add_permanent_instruction(instruction, self.project_root)
        except OSError as e:
            self.console.print(Text(f"❌ Failed to add instruction: {e}", style="red"))
            return
        self.console.print(Text(f"📝 Added permanent instruction to {path.name}: {instruction}", style="green"))

    def init_project(self) -> None:
        path = agents_path(self.project_root)
        if path.exists() and not parse_yes_strict(self.ask("⚠️  AGENTS.md already exists. Overwrite? (y/n): ")):
            self.console.print("❌ Project initialization cancelled")
            return
        try:
            created = create_basic_agents_md(self.project_root)
        except OSError as e:
            self.console.print(Text(f"❌ Error creating AGENTS.md: {e}", style="red"))
            return
        self.console.print("[green]✅ Project initialized[/green]")
        self.console.print(Text(f"📄 Created: {created}"))

    def clear_context(self) -> None:
        self.agent.session.clear()
        self.console.clear()
        self.console.print("[green]🔄 Conversation context cleared - Starting fresh![/green]")

    def export(self, args: List[str]) -> None:
        session = self.agent.session
        if not session.messages:
            self.console.print("❌ No conversation context to export")
            return
        try:
            path = export_context(session, args[0] if args else None, self.project_root)
        except OSError as e:
            self.console.print(Text(f"❌ Failed to write export file: {e}", style="red"))
            return
        self.console.print("[green]✅ Context exported successfully![/green]")
        self.console.print(Text(f"📄 File: {path}"))
        self.console.print(f"📊 Messages: {len(session.messages)}")
        if session.last_usage:
            self.console.print(f"🔢 Context tokens: {session.last_usage.prompt_tokens}")

    def models(self, args: List[str]) -> None:
        config = self.agent.config
        if not args:
            self.console.print("\n[bold]🤖 Available Models[/bold]")
            for key, model in config.models.items():
                current = " (current)" if key == config.active_model_key else ""
                if not model.api_key:
                    key_info = "(none)"
                elif len(model.api_key) > 4:
                    key_info = "***" + model.api_key[-4:]
                else:
                    key_info = "***"
                self.console.print(Text(
                    f"📱 {key}{current}\n   Name: {model.name}\n   URL:  {model.base_url}\n   API Key: {key_info}\n"
                ))
            return
        if len(args) != 1:
            self.console.print("Usage:\n  /models           - List available models\n  /models <name>    - Switch to model")
            return

        key = args[0]
        if key not in config.models:
            self.console.print(Text(f"❌ Model '{key}' not found", style="red"))
            self.console.print("Available models: " + ", ".join(config.models))
            return
        self.agent.client.set_model(config.select_model(key))
        try:
            config.save()
        except OSError as e:
            self.console.print(Text(f"❌ Failed to save config: {e}", style="red"))
        log.info("Switched model to %s", key)
        self.console.print(Text(f"✅ Switched to model: {key}", style="green"))
        self.console.print(Text(f"📱 Name: {config.model.name}\n🌐 URL: {config.model.base_url}"))

    def permissions(self, args: List[str]) -> None:
        gate = self.agent.permissions
        if not args:
            folders = gate.folders()
            self.console.print("\n[bold]🔒 Approved Folders[/bold]")
            if not folders:
                self.console.print("No folders have been approved yet.")
                return
            for i, folder in enumerate(folders, 1):
                self.console.print(Text(f"{i}. {folder}"))
            self.console.print(f"\nTotal: {len(folders)} folder(s)")
            return
        if len(args) == 2 and args[0] == "remove":
            if gate.revoke(args[1]):
                self.console.print(Text(f"✅ Removed folder permission: {args[1]}", style="green"))
            else:
                self.console.print(Text(f"❌ Folder not found in approved list: {args[1]}", style="red"))
            return
        self.console.print(
            "Usage:\n  /permissions               - List approved folders\n"
            "  /permissions remove <path> - Remove folder permission"
        )


def parse_yes_strict(answer: str) -> bool:
    """Overwrite confirmations need an explicit yes."""
    return answer.strip().lower() in ("y", "yes")

"""Operator confirmation for tool calls and folder access."""

from enum import Enum

from rich.console import Console


class Decision(str, Enum):
    EXECUTE = "execute"
    SKIP = "skip"
    DENY = "deny"
    BACKGROUND = "background"
    INTERRUPT = "interrupt"


_ANSWERS = {
    "": Decision.EXECUTE,
    "y": Decision.EXECUTE,
    "yes": Decision.EXECUTE,
    "s": Decision.SKIP,
    "skip": Decision.SKIP,
    "b": Decision.BACKGROUND,
    "background": Decision.BACKGROUND,
    "i": Decision.INTERRUPT,
    "interrupt": Decision.INTERRUPT,
}


def parse_decision(answer: str) -> Decision:
    """Map a typed answer to a Decision; Enter means execute, anything unknown denies."""
    return _ANSWERS.get(answer.strip().lower(), Decision.DENY)


def parse_yes(answer: str) -> bool:
    return answer.strip().lower() in ("", "y", "yes")


class Prompter:
    """Source of operator answers. Every call blocks until answered."""

    def ask_tool(self, long_running: bool) -> Decision:
        raise NotImplementedError

    def ask_folder(self, folder: str) -> bool:
        raise NotImplementedError

    def ask_instruction(self) -> str:
        raise NotImplementedError


class ConsolePrompter(Prompter):
    """Reads answers from the terminal through a rich Console."""

    def __init__(self, console: Console):
        self.console = console

    def ask_tool(self, long_running: bool) -> Decision:
        options = "Y/n/s to skip/i to interrupt"
        if long_running:
            self.console.print("[yellow]⚠️  This looks like a long-running command![/yellow]")
            options += "/b for background"
        return parse_decision(self.console.input(f"\n❓ Execute this tool? ({options}): "))

    def ask_folder(self, folder: str) -> bool:
        self.console.print(f"🔒 Request folder access: {folder}", markup=False)
        answer = self.console.input(
            "❓ Allow list_files and read_file operations in this folder and all subfolders? (Y/n): "
        )
        if parse_yes(answer):
            self.console.print(f"[green]✅ Folder access granted:[/green] {folder} (includes all subfolders)")
            return True
        self.console.print("[red]❌ Folder access denied[/red]")
        return False

    def ask_instruction(self) -> str:
        return self.console.input("\n💬 What would you like me to do instead? ").strip()

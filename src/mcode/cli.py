"""Command-line entry point: one-shot prompt or interactive REPL."""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import List, Optional

from prompt_toolkit import PromptSession
from prompt_toolkit.auto_suggest import AutoSuggestFromHistory
from prompt_toolkit.history import FileHistory
from rich.console import Console
from rich.text import Text

from .agent import Agent
from .commands import CommandHandler
from .config import Config
from .confirm import ConsolePrompter
from .llm_client import LLMClient, ModelCallError
from .logger import get_logger, get_output_dir, init_logging, log_exception

log = get_logger("cli")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="mcode",
        description="Interactive coding agent with confirmed tool execution",
    )
    parser.add_argument("prompt", nargs="*", help="Run a single request and exit")
    parser.add_argument("--model", help="Model key from the config file to use")
    parser.add_argument("--config", type=Path, help="Config file (default: ~/.mcode-config.json)")
    parser.add_argument("--no-stream", action="store_true", help="Disable streaming responses")
    return parser.parse_args(argv)


async def run_turn(agent: Agent, text: str, console: Console) -> None:
    try:
        await agent.run(text)
    except ModelCallError as e:
        log_exception(log, "Turn failed", e)
        console.print(Text(f"\n❌ {e}", style="red"))


async def repl(agent: Agent, handler: CommandHandler, console: Console) -> None:
    history_file = get_output_dir() / "history"
    session = PromptSession(
        history=FileHistory(str(history_file)),
        auto_suggest=AutoSuggestFromHistory(),
    )
    while True:
        try:
            line = (await session.prompt_async("> ")).strip()
        except KeyboardInterrupt:
            continue
        except EOFError:
            console.print("👋 Goodbye!")
            return
        if not line:
            continue
        if line.startswith("/") or line.startswith("#"):
            if handler.handle(line):
                return
            continue
        try:
            await run_turn(agent, line, console)
        except KeyboardInterrupt:
            console.print("\n[yellow][STOP] Interrupted[/yellow]")
        console.print()


async def amain(args: argparse.Namespace) -> int:
    config = Config.load(args.config)
    if args.model:
        if args.model not in config.models:
            print(f"Unknown model '{args.model}'. Available: {', '.join(config.models)}", file=sys.stderr)
            return 2
        config.model_override = args.model
    if args.no_stream:
        config.stream = False

    console = Console()
    async with LLMClient(config.model) as client:
        agent = Agent(config, client, ConsolePrompter(console), console=console)
        if args.prompt:
            await run_turn(agent, " ".join(args.prompt), console)
            return 0

        console.print("[bold blue]🤖 MCode[/bold blue] - coding agent | /help for commands")
        console.print(Text(f"Model: {config.active_model_key} ({config.model.name})", style="dim"))
        console.print(Text(f"Workspace: {Path.cwd()}\n", style="dim"))
        handler = CommandHandler(agent, console, ask=console.input)
        await repl(agent, handler, console)
    return 0


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    init_logging(str(Path.cwd()))
    try:
        code = asyncio.run(amain(args))
    except KeyboardInterrupt:
        code = 130
    sys.exit(code)


if __name__ == "__main__":
    main()

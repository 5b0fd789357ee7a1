"""Conversation loop: drafts responses, routes tool calls, controls context size.

One call to ``Agent.run`` handles one user message. It keeps asking the model
until a response arrives without tool calls. Tool calls within a response are
confirmed and executed strictly one after another.
"""

import json
import uuid
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.text import Text

from .config import Config
from .confirm import Decision, Prompter
from .context_management import (
    estimate_usage,
    is_context_error,
    is_degradable_error,
    response_budget,
    trim_history,
)
from .diff_renderer import colorize_diff
from .llm_client import ChatResponse, LLMClient, Message, ModelCallError, ToolCall, ToolCallDelta, TokenUsage
from .logger import get_logger, truncate
from .permissions import PermissionGate, folder_for
from .project import load_agents_md
from .prompts import get_system_prompt
from .session import Session
from .spinner import Spinner
from .tools import READ_ONLY_TOOLS, ToolDispatcher, ToolName, build_dispatcher, is_long_running

log = get_logger("agent")

# Prompt size above which a failed request is treated as a context overflow
CONTEXT_OVERFLOW_HINT = 6000

PERMISSION_DENIED = "Permission denied for folder access"
SKIPPED = "Tool execution skipped by user"
DENIED = "Tool execution denied by user"
BACKGROUND_UNAVAILABLE = "Background execution only available for long-running commands"
INTERRUPTED = "Tool execution interrupted by user. New instruction: {instruction}"
INTERRUPTED_EMPTY = "Tool execution interrupted but no alternative instruction provided"


class CallOutcome(Enum):
    CONTINUE = "continue"
    ABORT_BATCH = "abort_batch"


class ToolCallAccumulator:
    """Reassembles streamed tool calls from fragments keyed by stream index."""

    def __init__(self):
        self._calls: Dict[int, ToolCall] = {}

    def __bool__(self) -> bool:
        return bool(self._calls)

    def add(self, delta: ToolCallDelta) -> None:
        call = self._calls.setdefault(delta.index, ToolCall(id="", name=""))
        if delta.id:
            call.id = delta.id
        if delta.name:
            call.name = delta.name
        if delta.arguments:
            call.arguments += delta.arguments

    def calls(self) -> List[ToolCall]:
        result = []
        for index in sorted(self._calls):
            call = self._calls[index]
            if not call.id:
                call.id = f"call_{uuid.uuid4().hex[:12]}"
            result.append(call)
        return result


class Agent:
    """Per-turn state machine around the model, the operator and the tools."""

    def __init__(
        self,
        config: Config,
        client: LLMClient,
        prompter: Prompter,
        console: Optional[Console] = None,
        session: Optional[Session] = None,
        dispatcher: Optional[ToolDispatcher] = None,
        permissions: Optional[PermissionGate] = None,
        project_root: Optional[Path] = None,
    ):
        self.config = config
        self.client = client
        self.prompter = prompter
        self.console = console or Console()
        self.session = session or Session()
        self.dispatcher = dispatcher or build_dispatcher(command_timeout=config.command_timeout)
        self.permissions = permissions or PermissionGate(
            config.approved_folders, on_change=self._save_folders,
        )
        self.project_root = project_root
        self.model_calls = 0

    def _save_folders(self, folders: List[str]) -> None:
        self.config.approved_folders = folders
        try:
            self.config.save()
        except OSError as e:
            log.warning("Failed to save folder permission: %s", e)
            self.console.print(f"[yellow]⚠️  Warning: Failed to save folder permission: {e}[/yellow]")

    # ── Turn ─────────────────────────────────────────────────

    async def run(self, user_message: str) -> str:
        """Handle one user message through as many model rounds as it takes."""
        if not self.session.messages:
            prompt = get_system_prompt(load_agents_md(self.project_root))
            self.session.append(Message(role="system", content=prompt))
        self.session.append(Message(role="user", content=user_message))
        log.info("Turn started: %s", truncate(user_message))

        while True:
            self._trim_if_needed()
            max_tokens = response_budget(
                self.session.last_usage,
                self.config.max_response_tokens,
                self.config.context_window,
            )
            try:
                message = await self._draft(max_tokens)
            except ModelCallError as e:
                if not is_degradable_error(str(e)):
                    raise
                message = await self._degraded_retry(e)

            self.session.append(message)
            if not message.tool_calls:
                break
            await self._handle_tool_calls(message.tool_calls)

        self.console.print()
        self._print_usage()
        return message.content

    def _trim_if_needed(self) -> None:
        usage = self.session.last_usage
        if usage is None or usage.prompt_tokens <= self.config.context_high_water:
            return
        self.console.print(
            f"[yellow]⚠️  Context getting large ({usage.prompt_tokens} tokens), "
            "trimming older messages...[/yellow]"
        )
        self._trim()

    def _trim(self) -> List[Message]:
        before = len(self.session.messages)
        trimmed = trim_history(self.session.messages, self.config.keep_recent)
        self.session.replace_history(trimmed)
        self.console.print(f"📉 Context trimmed: {before} → {len(trimmed)} messages")
        log.info("Context trimmed %d -> %d messages", before, len(trimmed))
        return trimmed

    # ── Drafting ─────────────────────────────────────────────

    async def _draft(self, max_tokens: int) -> Message:
        self.model_calls += 1
        if not self.config.stream:
            response = await self.client.chat(self.session.messages, self.dispatcher.schemas(), max_tokens)
            return self._finish_response(response)

        history = self.session.messages
        accumulator = ToolCallAccumulator()
        parts: List[str] = []
        usage: Optional[TokenUsage] = None
        spinner: Optional[Spinner] = None
        try:
            async for chunk in self.client.stream_chat(history, self.dispatcher.schemas(), max_tokens):
                if chunk.content:
                    if spinner is not None and spinner.running:
                        await spinner.stop()
                    self.console.out(chunk.content, end="", highlight=False)
                    parts.append(chunk.content)
                if chunk.tool_calls:
                    if spinner is None or not spinner.running:
                        self.console.out("", highlight=False)
                        spinner = Spinner(self.console.file)
                        spinner.start()
                    for delta in chunk.tool_calls:
                        accumulator.add(delta)
                if chunk.usage:
                    usage = chunk.usage
        finally:
            if spinner is not None:
                await spinner.stop()

        content = "".join(parts)
        self._record_usage(usage, history, content)
        return Message(role="assistant", content=content, tool_calls=accumulator.calls())

    def _finish_response(self, response: ChatResponse) -> Message:
        if response.content:
            self.console.out(response.content, end="", highlight=False)
        self._record_usage(response.usage, self.session.messages, response.content)
        return Message(role="assistant", content=response.content, tool_calls=response.tool_calls)

    def _record_usage(self, usage: Optional[TokenUsage], history: List[Message], content: str) -> None:
        if usage is not None:
            self.session.record_usage(usage)
            return
        estimate = estimate_usage(history, content)
        self.session.record_usage(estimate, counted=estimate.completion_tokens)
        log.debug("Estimated usage prompt=%d completion=%d", estimate.prompt_tokens, estimate.completion_tokens)

    async def _degraded_retry(self, error: ModelCallError) -> Message:
        """One simplified request after a tool-format or context-shaped failure."""
        message = str(error)
        log.warning("Degraded retry after: %s", truncate(message, 500))
        self.console.print(Text(f"\n⚠️  Request failed: {message}", style="yellow"))

        if is_context_error(message) or self.session.context_tokens > CONTEXT_OVERFLOW_HINT:
            self.console.print("💡 This looks like a context window overflow. Trimming context and retrying...")
            history = self._trim()
        else:
            self.console.print(
                f"💡 This may be a tool calling format issue with model '{self.client.model.name}'.\n"
                "   Try switching to a more compatible model with: /models",
                markup=False,
            )
            history = trim_history(self.session.messages, self.config.keep_recent)

        self.console.print("🔄 Retrying with simplified request...")
        self.model_calls += 1
        try:
            response = await self.client.chat(history, tools=None, max_tokens=self.config.fallback_max_tokens)
        except ModelCallError as retry_error:
            raise ModelCallError(
                f"error calling API (even after fallback): {retry_error}",
                status_code=retry_error.status_code,
            ) from retry_error
        return self._finish_response(response)

    # ── Tool calls ───────────────────────────────────────────

    async def _handle_tool_calls(self, calls: List[ToolCall]) -> None:
        for index, call in enumerate(calls):
            outcome = await self._process_call(call)
            if outcome is CallOutcome.ABORT_BATCH:
                log.info("Batch aborted at call %d of %d", index + 1, len(calls))
                break

    def _record_result(self, call: ToolCall, text: str) -> None:
        self.session.append(Message(role="tool", content=text, tool_call_id=call.id))

    async def _process_call(self, call: ToolCall) -> CallOutcome:
        try:
            arguments = json.loads(call.arguments or "{}")
            if not isinstance(arguments, dict):
                raise ValueError("arguments must be a JSON object")
        except ValueError as e:
            self.console.print(Text(f"Error parsing tool parameters: {e}", style="red"))
            self._record_result(call, f"Error: invalid tool arguments: {e}")
            return CallOutcome.CONTINUE

        self._show_call(call.name, arguments)

        name = ToolName.lookup(call.name)
        tool = self.dispatcher.get(call.name)
        if name is None or tool is None or not tool.advertised:
            self.console.print(Text(f"Unknown tool: {call.name}", style="red"))
            self._record_result(call, f"Error: Unknown tool: {call.name}")
            return CallOutcome.CONTINUE

        long_running = name is ToolName.BASH_COMMAND and is_long_running(str(arguments.get("command", "")))

        if name in READ_ONLY_TOOLS:
            folder = folder_for(name.value, arguments)
            if not self.permissions.request(folder, self.prompter.ask_folder):
                self._record_result(call, PERMISSION_DENIED)
                return CallOutcome.CONTINUE
            decision = Decision.EXECUTE
        else:
            decision = self.prompter.ask_tool(long_running)
        log.info("Tool %s decision=%s", call.name, decision.value)

        if decision is Decision.EXECUTE:
            text = await self._execute(name, arguments)
        elif decision is Decision.SKIP:
            self.console.print("⏭️  Tool execution skipped")
            text = SKIPPED
        elif decision is Decision.BACKGROUND:
            if long_running:
                self.console.print("🚀 Starting command in background...")
                text = await self._execute(ToolName.BASH_BACKGROUND, arguments)
            else:
                self.console.print(f"[yellow]⚠️  {BACKGROUND_UNAVAILABLE}[/yellow]")
                text = BACKGROUND_UNAVAILABLE
        elif decision is Decision.INTERRUPT:
            instruction = self.prompter.ask_instruction()
            if instruction:
                self.console.print(Text(f"🔄 Interrupting with new instruction: {instruction}"))
                self._record_result(call, INTERRUPTED.format(instruction=instruction))
                self.session.append(Message(role="user", content=instruction))
                return CallOutcome.ABORT_BATCH
            self.console.print("[yellow]⚠️  No alternative instruction provided[/yellow]")
            text = INTERRUPTED_EMPTY
        else:
            self.console.print("[red]❌ Tool execution denied[/red]")
            text = DENIED

        self._record_result(call, text)
        return CallOutcome.CONTINUE

    async def _execute(self, name: ToolName, arguments: Dict[str, Any]) -> str:
        if name is ToolName.BASH_COMMAND:
            self.console.print(Text(f"Executing: {arguments.get('command', '')}", style="yellow"))
        result = await self.dispatcher.execute(name.value, arguments)
        text = result.to_message()
        if name in (ToolName.EDIT_FILE, ToolName.PREVIEW_EDIT) and result.success:
            self.console.print(colorize_diff(text))
        elif not result.success:
            self.console.print(Text(text, style="red"))
        elif name in (ToolName.BASH_COMMAND, ToolName.BASH_BACKGROUND) and text:
            self.console.print(Text(text.rstrip("\n"), style="dim"))
        return text

    def _show_call(self, name: str, arguments: Dict[str, Any]) -> None:
        line = Text("\n🔧 ")
        line.append(name, style="cyan")
        if name in ("read_file", "edit_file", "preview_edit", "list_files") and "path" in arguments:
            line.append(f" <{arguments['path']}>")
        elif name == "bash_command" and "command" in arguments:
            line.append(f" `{arguments['command']}`")
        elif name == "search_code" and "pattern" in arguments:
            line.append(f' "{arguments["pattern"]}"')
        self.console.print(line)

    def _print_usage(self) -> None:
        usage = self.session.last_usage
        if usage is None or usage.prompt_tokens <= 0:
            return
        self.console.print(Text(
            f"[Context: {usage.prompt_tokens} tokens | Response: {usage.completion_tokens} tokens | "
            f"Session: {self.session.total_tokens_used} tokens]",
            style="blue",
        ))

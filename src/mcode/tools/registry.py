"""Tool registry and dispatcher."""

import asyncio
import json
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel

from ..logger import get_logger, log_exception, truncate

log = get_logger("tools.registry")


class ToolName(str, Enum):
    """Every tool the dispatcher knows about."""

    READ_FILE = "read_file"
    LIST_FILES = "list_files"
    BASH_COMMAND = "bash_command"
    BASH_BACKGROUND = "bash_background"
    EDIT_FILE = "edit_file"
    PREVIEW_EDIT = "preview_edit"
    SEARCH_CODE = "search_code"

    @classmethod
    def lookup(cls, name: str) -> Optional["ToolName"]:
        try:
            return cls(name)
        except ValueError:
            return None


# Tools gated by folder approval instead of a per-call prompt
READ_ONLY_TOOLS = frozenset({ToolName.READ_FILE, ToolName.LIST_FILES, ToolName.PREVIEW_EDIT})


class ToolResult(BaseModel):
    """Result of a tool execution."""

    success: bool
    output: Any = None
    error: Optional[str] = None

    def to_message(self) -> str:
        """Convert result to a message string for the LLM."""
        if self.success:
            if self.output is None:
                return ""
            if isinstance(self.output, str):
                return self.output
            return json.dumps(self.output, indent=2, default=str)
        return f"Error: {self.error}"


@dataclass
class Tool:
    """Definition of a tool that can be called by the LLM."""

    name: ToolName
    description: str
    parameters: Dict[str, Any]
    function: Callable
    required_params: List[str] = field(default_factory=list)
    advertised: bool = True

    def to_openai_schema(self) -> Dict[str, Any]:
        """Convert tool to OpenAI-compatible function schema."""
        return {
            "type": "function",
            "function": {
                "name": self.name.value,
                "description": self.description,
                "parameters": {
                    "type": "object",
                    "properties": self.parameters,
                    "required": self.required_params,
                },
            },
        }

    async def execute(self, arguments: Dict[str, Any]) -> ToolResult:
        """Run the tool; exceptions become an error result."""
        missing = [p for p in self.required_params if arguments.get(p) is None]
        if missing:
            return ToolResult(success=False, error=f"{', '.join(missing)} parameter is required")

        kwargs = {k: v for k, v in arguments.items() if k in self.parameters}
        start = time.perf_counter()
        try:
            if asyncio.iscoroutinefunction(self.function):
                result = await self.function(**kwargs)
            else:
                result = self.function(**kwargs)
        except Exception as e:
            log_exception(log, f"Tool {self.name.value} failed", e)
            return ToolResult(success=False, error=str(e) or type(e).__name__)
        log.info(
            "Tool %s ok in %.0fms -> %s",
            self.name.value, (time.perf_counter() - start) * 1000, truncate(str(result)),
        )
        return ToolResult(success=True, output=result)


class ToolDispatcher:
    """Maps tool names to executors with a uniform execute contract."""

    def __init__(self):
        self._tools: Dict[ToolName, Tool] = {}

    def register(self, tool: Tool) -> None:
        self._tools[tool.name] = tool

    def register_function(
        self,
        name: ToolName,
        description: str,
        parameters: Dict[str, Any],
        required: Optional[List[str]] = None,
        advertised: bool = True,
    ) -> Callable:
        """Decorator to register a function as a tool."""
        def decorator(func: Callable) -> Callable:
            self.register(Tool(
                name=name,
                description=description,
                parameters=parameters,
                function=func,
                required_params=required or [],
                advertised=advertised,
            ))
            return func
        return decorator

    def get(self, name: str) -> Optional[Tool]:
        key = ToolName.lookup(name)
        return self._tools.get(key) if key else None

    def list_tools(self) -> List[Tool]:
        return list(self._tools.values())

    def schemas(self) -> List[Dict[str, Any]]:
        """Advertised tools in OpenAI-compatible schema."""
        return [t.to_openai_schema() for t in self._tools.values() if t.advertised]

    async def execute(self, name: str, arguments: Dict[str, Any]) -> ToolResult:
        tool = self.get(name)
        if not tool:
            return ToolResult(success=False, error=f"Unknown tool: {name}")
        log.debug("Executing %s args=%s", name, truncate(json.dumps(arguments, default=str)))
        return await tool.execute(arguments)

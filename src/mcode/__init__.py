"""Interactive coding agent: fuzzy file patching, windowed diffs, confirmed tool calls."""

from .agent import Agent
from .config import Config
from .confirm import Decision, Prompter
from .diff_renderer import generate_diff, render_diff
from .llm_client import LLMClient, Message, ModelCallError
from .permissions import PermissionGate
from .replace_engine import replace_in_content
from .session import Session
from .tools import ToolDispatcher, build_dispatcher

__version__ = "0.1.0"
__all__ = [
    "Agent",
    "Config",
    "Decision",
    "Prompter",
    "generate_diff",
    "render_diff",
    "LLMClient",
    "Message",
    "ModelCallError",
    "PermissionGate",
    "replace_in_content",
    "Session",
    "ToolDispatcher",
    "build_dispatcher",
]

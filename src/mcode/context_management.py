"""Context-size control: token estimates, history trimming and response budgets."""

from typing import List, Optional, Sequence

from .llm_client import Message, TokenUsage

# Substrings of model errors that earn one degraded retry
DEGRADABLE_ERROR_PATTERNS = (
    "tool call", "Failed to parse", "Unexpected end", "context", "too long", "maximum",
)
# Subset that indicates the history itself is too big
CONTEXT_ERROR_PATTERNS = ("context", "too long", "maximum")

RESPONSE_SAFETY_BUFFER = 1000
MIN_RESPONSE_TOKENS = 1000


def estimate_tokens(text: Optional[str]) -> int:
    """Estimate token count. Rough approximation: ~4 chars per token."""
    return len(text or "") // 4


def estimate_usage(history: Sequence[Message], response_text: str) -> TokenUsage:
    """Usage for a response whose stream carried none."""
    prompt = sum(estimate_tokens(m.content) for m in history)
    completion = max(1, estimate_tokens(response_text))
    return TokenUsage(prompt_tokens=prompt, completion_tokens=completion, total_tokens=prompt + completion)


def trim_history(messages: Sequence[Message], keep_recent: int = 6) -> List[Message]:
    """System messages plus the most recent ``keep_recent`` non-system messages.

    Tool results whose assistant call was cut off are dropped from the front
    of the kept window; most endpoints reject an orphan tool message.
    """
    if len(messages) <= 3:
        return list(messages)

    system = [m for m in messages if m.role == "system"]
    recent = [m for m in messages[-keep_recent:] if m.role != "system"]
    while recent and recent[0].role == "tool":
        recent.pop(0)
    return system + recent


def response_budget(last_usage: Optional[TokenUsage], max_response: int = 8000, context_window: int = 32000) -> int:
    """max_tokens for the next request given the last prompt size."""
    if last_usage is None:
        return max_response
    remaining = context_window - last_usage.prompt_tokens - RESPONSE_SAFETY_BUFFER
    if remaining < max_response:
        return max(remaining, MIN_RESPONSE_TOKENS)
    return max_response


def is_degradable_error(message: str) -> bool:
    return any(p in message for p in DEGRADABLE_ERROR_PATTERNS)


def is_context_error(message: str) -> bool:
    return any(p in message for p in CONTEXT_ERROR_PATTERNS)


def truncate_output(
    text: str,
    max_lines: int = 400,
    keep_start: int = 100,
    keep_end: int = 100,
) -> str:
    """Truncate long command output, keeping start and end."""
    lines = text.splitlines()

    if len(lines) <= max_lines:
        return text

    start = lines[:keep_start]
    end = lines[-keep_end:]
    removed = len(lines) - keep_start - keep_end

    return "\n".join(start) + f"\n\n... ({removed} lines truncated) ...\n\n" + "\n".join(end)

"""LLM client for OpenAI-compatible chat completion endpoints."""

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from .config import ModelConfig
from .logger import get_logger, truncate

log = get_logger("llm_client")

RETRY_STATUS = (429, 500, 502, 503, 504)


class ModelCallError(RuntimeError):
    """A chat completion request failed for good."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["TokenUsage"]:
        if not data:
            return None
        prompt = int(data.get("prompt_tokens") or 0)
        completion = int(data.get("completion_tokens") or 0)
        return cls(prompt, completion, int(data.get("total_tokens") or prompt + completion))


@dataclass
class ToolCall:
    """A tool invocation requested by the model; ``arguments`` is raw JSON."""

    id: str
    name: str
    arguments: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ToolCall":
        fn = data.get("function") or {}
        return cls(id=data.get("id") or "", name=fn.get("name") or "", arguments=fn.get("arguments") or "")


@dataclass
class Message:
    """A chat message."""

    role: str  # "system", "user", "assistant", "tool"
    content: str = ""
    tool_calls: List[ToolCall] = field(default_factory=list)
    tool_call_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to API-compatible dictionary."""
        result: Dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_calls:
            result["tool_calls"] = [tc.to_dict() for tc in self.tool_calls]
        if self.tool_call_id:
            result["tool_call_id"] = self.tool_call_id
        return result


@dataclass
class ChatResponse:
    """Non-streaming response."""

    content: str = ""
    tool_calls: List[ToolCall] = field(default_factory=list)
    finish_reason: str = ""
    usage: Optional[TokenUsage] = None


@dataclass
class ToolCallDelta:
    """A fragment of a streamed tool call; fragments share an ``index``."""

    index: int
    id: str = ""
    name: str = ""
    arguments: str = ""


@dataclass
class StreamChunk:
    content: str = ""
    tool_calls: List[ToolCallDelta] = field(default_factory=list)
    finish_reason: str = ""
    usage: Optional[TokenUsage] = None


def parse_stream_chunk(data: Dict[str, Any]) -> StreamChunk:
    """Turn one SSE ``data:`` payload into a StreamChunk."""
    chunk = StreamChunk(usage=TokenUsage.from_dict(data.get("usage")))
    choices = data.get("choices") or []
    if not choices:
        return chunk
    choice = choices[0]
    delta = choice.get("delta") or {}
    chunk.content = delta.get("content") or ""
    for tc in delta.get("tool_calls") or []:
        fn = tc.get("function") or {}
        chunk.tool_calls.append(ToolCallDelta(
            index=tc.get("index") or 0,
            id=tc.get("id") or "",
            name=fn.get("name") or "",
            arguments=fn.get("arguments") or "",
        ))
    chunk.finish_reason = choice.get("finish_reason") or ""
    return chunk


class LLMClient:
    """Async client with tool calling and SSE streaming support."""

    def __init__(
        self,
        model: ModelConfig,
        max_retries: int = 3,
        timeout: float = 300.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.model = model
        self.max_retries = max_retries
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout, connect=30.0),
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._client:
            await self._client.aclose()
            self._client = None

    def set_model(self, model: ModelConfig) -> None:
        self.model = model

    @property
    def url(self) -> str:
        return f"{self.model.base_url.rstrip('/')}/chat/completions"

    def _get_headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.model.api_key:
            headers["Authorization"] = f"Bearer {self.model.api_key}"
        return headers

    def _payload(
        self,
        messages: List[Message],
        tools: Optional[List[Dict[str, Any]]],
        max_tokens: Optional[int],
        stream: bool,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self.model.name,
            "messages": [m.to_dict() for m in messages],
        }
        if max_tokens:
            payload["max_tokens"] = max_tokens
        if tools:
            payload["tools"] = tools
            payload["tool_choice"] = "auto"
        if stream:
            payload["stream"] = True
            payload["stream_options"] = {"include_usage": True}
        return payload

    def _require_client(self) -> httpx.AsyncClient:
        if not self._client:
            raise RuntimeError("Client not initialized. Use async context manager.")
        return self._client

    async def _backoff(self, attempt: int, reason: str) -> None:
        wait_time = min(2 ** (attempt + 1), 60)
        log.warning("%s. Retrying in %ss (attempt %d/%d)", reason, wait_time, attempt + 1, self.max_retries)
        await asyncio.sleep(wait_time)

    async def chat(
        self,
        messages: List[Message],
        tools: Optional[List[Dict[str, Any]]] = None,
        max_tokens: Optional[int] = None,
    ) -> ChatResponse:
        """Send a non-streaming chat completion request."""
        client = self._require_client()
        payload = self._payload(messages, tools, max_tokens, stream=False)
        log.debug("chat model=%s messages=%d tools=%d", self.model.name, len(messages), len(tools or []))

        for attempt in range(self.max_retries + 1):
            try:
                response = await client.post(self.url, headers=self._get_headers(), json=payload)
            except httpx.RequestError as e:
                if attempt < self.max_retries:
                    await self._backoff(attempt, f"Request error: {e}")
                    continue
                raise ModelCallError(f"API request failed: {e}") from e

            if response.status_code >= 400:
                if response.status_code in RETRY_STATUS and attempt < self.max_retries:
                    await self._backoff(attempt, f"HTTP {response.status_code}")
                    continue
                raise ModelCallError(
                    f"API request failed with status {response.status_code}: {response.text}",
                    status_code=response.status_code,
                )
            return self._parse_response(response.json())

        raise ModelCallError(f"API request failed after {self.max_retries} retries")

    def _parse_response(self, data: Dict[str, Any]) -> ChatResponse:
        choices = data.get("choices") or []
        if not choices:
            raise ModelCallError(f"API returned no choices: {truncate(json.dumps(data))}")
        choice = choices[0]
        message = choice.get("message") or {}
        return ChatResponse(
            content=message.get("content") or "",
            tool_calls=[ToolCall.from_dict(tc) for tc in message.get("tool_calls") or []],
            finish_reason=choice.get("finish_reason") or "",
            usage=TokenUsage.from_dict(data.get("usage")),
        )

    async def stream_chat(
        self,
        messages: List[Message],
        tools: Optional[List[Dict[str, Any]]] = None,
        max_tokens: Optional[int] = None,
    ) -> AsyncIterator[StreamChunk]:
        """Stream a chat completion as incremental chunks.

        Retries only happen before the first chunk is yielded; a failure
        mid-stream is raised as ModelCallError.
        """
        client = self._require_client()
        payload = self._payload(messages, tools, max_tokens, stream=True)
        log.debug("stream model=%s messages=%d tools=%d", self.model.name, len(messages), len(tools or []))

        for attempt in range(self.max_retries + 1):
            yielded = False
            try:
                async with client.stream("POST", self.url, headers=self._get_headers(), json=payload) as response:
                    if response.status_code >= 400:
                        body = (await response.aread()).decode("utf-8", errors="replace")
                        if response.status_code in RETRY_STATUS and attempt < self.max_retries:
                            await self._backoff(attempt, f"HTTP {response.status_code}")
                            continue
                        raise ModelCallError(
                            f"API request failed with status {response.status_code}: {body}",
                            status_code=response.status_code,
                        )

                    line_buffer = ""
                    async for raw_chunk in response.aiter_bytes():
                        line_buffer += raw_chunk.decode("utf-8", errors="ignore")
                        while "\n" in line_buffer:
                            line, line_buffer = line_buffer.split("\n", 1)
                            line = line.strip()
                            if not line.startswith("data:"):
                                continue
                            data_str = line[5:].strip()
                            if data_str == "[DONE]":
                                return
                            try:
                                data = json.loads(data_str)
                            except json.JSONDecodeError:
                                log.debug("Skipping malformed SSE line: %s", truncate(data_str))
                                continue
                            if "error" in data:
                                raise ModelCallError(f"Stream error: {data['error']}")
                            yielded = True
                            yield parse_stream_chunk(data)
                return
            except httpx.RequestError as e:
                if not yielded and attempt < self.max_retries:
                    await self._backoff(attempt, f"Connection error: {e}")
                    continue
                raise ModelCallError(f"error receiving stream: {e}") from e

        raise ModelCallError(f"API request failed after {self.max_retries} retries")

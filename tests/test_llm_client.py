"""Tests for the chat completion client using httpx's mock transport."""

import asyncio
import json
import sys
from pathlib import Path

import httpx
import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from mcode.config import ModelConfig
from mcode.llm_client import LLMClient, Message, ModelCallError, ToolCall, parse_stream_chunk

MODEL = ModelConfig(name="test-model", base_url="http://llm.local/v1/", api_key="sk-test")


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch):
    async def instant(self, attempt, reason):
        return None
    monkeypatch.setattr(LLMClient, "_backoff", instant)


def sse(*payloads):
    lines = [f"data: {json.dumps(p)}\n\n" for p in payloads]
    lines.append("data: [DONE]\n\n")
    return "".join(lines).encode()


def run_with(handler, coro_fn):
    async def scenario():
        async with LLMClient(MODEL, transport=httpx.MockTransport(handler)) as client:
            return await coro_fn(client)
    return asyncio.run(scenario())


async def collect(client, **kwargs):
    return [chunk async for chunk in client.stream_chat([Message(role="user", content="hi")], **kwargs)]


def test_parse_stream_chunk():
    chunk = parse_stream_chunk({
        "choices": [{
            "delta": {
                "content": "he",
                "tool_calls": [{"index": 1, "id": "c1", "function": {"name": "read_file", "arguments": "{\"pa"}}],
            },
            "finish_reason": None,
        }],
    })
    assert chunk.content == "he"
    assert chunk.tool_calls[0].index == 1
    assert chunk.tool_calls[0].name == "read_file"
    assert chunk.finish_reason == ""


def test_parse_usage_only_chunk():
    chunk = parse_stream_chunk({"choices": [], "usage": {"prompt_tokens": 10, "completion_tokens": 2}})
    assert chunk.usage.total_tokens == 12
    assert chunk.content == ""


def test_message_serialization():
    msg = Message(role="assistant", tool_calls=[ToolCall(id="c1", name="list_files", arguments="{}")])
    assert msg.to_dict() == {
        "role": "assistant",
        "content": "",
        "tool_calls": [{"id": "c1", "type": "function", "function": {"name": "list_files", "arguments": "{}"}}],
    }
    assert Message(role="tool", content="x", tool_call_id="c1").to_dict()["tool_call_id"] == "c1"


def test_chat_request_and_response():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={
            "choices": [{
                "message": {
                    "content": "hello",
                    "tool_calls": [{"id": "c1", "type": "function", "function": {"name": "read_file", "arguments": "{}"}}],
                },
                "finish_reason": "tool_calls",
            }],
            "usage": {"prompt_tokens": 7, "completion_tokens": 3, "total_tokens": 10},
        })

    tools = [{"type": "function", "function": {"name": "read_file"}}]
    response = run_with(handler, lambda c: c.chat([Message(role="user", content="hi")], tools=tools, max_tokens=50))

    assert seen["url"] == "http://llm.local/v1/chat/completions"
    assert seen["auth"] == "Bearer sk-test"
    assert seen["body"]["model"] == "test-model"
    assert seen["body"]["max_tokens"] == 50
    assert seen["body"]["tool_choice"] == "auto"
    assert "stream" not in seen["body"]
    assert response.content == "hello"
    assert response.tool_calls == [ToolCall(id="c1", name="read_file", arguments="{}")]
    assert response.usage.total_tokens == 10


def test_chat_without_tools_omits_tool_fields():
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"choices": [{"message": {"content": "ok"}}]})

    run_with(handler, lambda c: c.chat([Message(role="user", content="hi")], tools=None))
    assert "tools" not in bodies[0]
    assert "tool_choice" not in bodies[0]


def test_chat_retries_on_503():
    attempts = []

    def handler(request):
        attempts.append(1)
        if len(attempts) < 3:
            return httpx.Response(503, text="busy")
        return httpx.Response(200, json={"choices": [{"message": {"content": "finally"}}]})

    response = run_with(handler, lambda c: c.chat([Message(role="user", content="hi")]))
    assert response.content == "finally"
    assert len(attempts) == 3


def test_chat_client_error_is_not_retried():
    attempts = []

    def handler(request):
        attempts.append(1)
        return httpx.Response(400, text="tool call format invalid")

    with pytest.raises(ModelCallError) as exc_info:
        run_with(handler, lambda c: c.chat([Message(role="user", content="hi")]))
    assert exc_info.value.status_code == 400
    assert "tool call format invalid" in str(exc_info.value)
    assert len(attempts) == 1


def test_chat_gives_up_after_retries():
    def handler(request):
        return httpx.Response(500, text="down")

    with pytest.raises(ModelCallError, match="status 500"):
        run_with(handler, lambda c: c.chat([Message(role="user", content="hi")]))


def test_stream_yields_chunks_until_done():
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.content))
        return httpx.Response(200, content=sse(
            {"choices": [{"delta": {"content": "Hel"}}]},
            {"choices": [{"delta": {"content": "lo"}}]},
            {"choices": [], "usage": {"prompt_tokens": 5, "completion_tokens": 2, "total_tokens": 7}},
        ))

    chunks = run_with(handler, collect)
    assert "".join(c.content for c in chunks) == "Hello"
    assert chunks[-1].usage.total_tokens == 7
    assert bodies[0]["stream"] is True
    assert bodies[0]["stream_options"] == {"include_usage": True}


def test_stream_skips_comments_and_malformed_lines():
    def handler(request):
        body = b": keep-alive\n\ndata: {oops\n\n" + sse({"choices": [{"delta": {"content": "ok"}}]})
        return httpx.Response(200, content=body)

    chunks = run_with(handler, collect)
    assert [c.content for c in chunks] == ["ok"]


def test_stream_error_payload_raises():
    def handler(request):
        return httpx.Response(200, content=b'data: {"error": {"message": "Failed to parse tool call"}}\n\n')

    with pytest.raises(ModelCallError, match="Failed to parse tool call"):
        run_with(handler, collect)


def test_stream_retries_before_first_chunk():
    attempts = []

    def handler(request):
        attempts.append(1)
        if len(attempts) == 1:
            return httpx.Response(429, text="slow down")
        return httpx.Response(200, content=sse({"choices": [{"delta": {"content": "ok"}}]}))

    chunks = run_with(handler, collect)
    assert [c.content for c in chunks] == ["ok"]
    assert len(attempts) == 2


def test_client_requires_context_manager():
    client = LLMClient(MODEL)
    with pytest.raises(RuntimeError):
        asyncio.run(client.chat([]))

"""Tests for REPL slash commands and #-instructions."""

import io
import json
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from rich.console import Console

from mcode.agent import Agent
from mcode.commands import CommandHandler
from mcode.config import Config, ModelConfig
from mcode.confirm import Decision, Prompter, parse_decision, parse_yes
from mcode.llm_client import Message


class NullPrompter(Prompter):
    pass


class RecordingClient:
    def __init__(self):
        self.model = ModelConfig(name="start", base_url="http://start")

    def set_model(self, model):
        self.model = model


def make_handler(tmp_path, answers=()):
    answers = list(answers)
    console = Console(file=io.StringIO(), width=200, color_system=None)
    config = Config(path=tmp_path / "cfg.json")
    agent = Agent(config, RecordingClient(), NullPrompter(), console=console, project_root=tmp_path)
    handler = CommandHandler(agent, console, ask=lambda prompt: answers.pop(0), project_root=tmp_path)
    return handler


def out(handler):
    return handler.console.file.getvalue()


def test_exit_commands():
    handler = make_handler(Path("/nonexistent"))
    assert handler.handle("/exit")
    assert handler.handle("/quit")
    assert not handler.handle("/help")


def test_unknown_command(tmp_path):
    handler = make_handler(tmp_path)
    assert not handler.handle("/frobnicate")
    assert "Unknown command: /frobnicate" in out(handler)


def test_hash_adds_permanent_instruction(tmp_path):
    handler = make_handler(tmp_path)
    handler.handle("#always write tests")
    assert "- always write tests" in (tmp_path / "AGENTS.md").read_text()


def test_init_creates_agents_md(tmp_path):
    handler = make_handler(tmp_path)
    handler.handle("/init")
    assert (tmp_path / "AGENTS.md").exists()


def test_init_asks_before_overwrite(tmp_path):
    (tmp_path / "AGENTS.md").write_text("keep me")
    handler = make_handler(tmp_path, answers=["n"])
    handler.handle("/init")
    assert (tmp_path / "AGENTS.md").read_text() == "keep me"
    assert "cancelled" in out(handler)


def test_new_clears_history_keeps_total(tmp_path):
    handler = make_handler(tmp_path)
    session = handler.agent.session
    session.append(Message(role="user", content="hi"))
    session.total_tokens_used = 42
    handler.handle("/new")
    assert session.messages == []
    assert session.total_tokens_used == 42


def test_export_requires_history(tmp_path):
    handler = make_handler(tmp_path)
    handler.handle("/export")
    assert "No conversation context to export" in out(handler)

    handler.agent.session.append(Message(role="user", content="hi"))
    handler.handle("/export notes")
    assert (tmp_path / "notes.txt").exists()


def test_models_switch_updates_client_and_config(tmp_path):
    handler = make_handler(tmp_path)
    handler.handle("/models openai")
    assert handler.agent.config.current_model == "openai"
    assert handler.agent.client.model.name == "gpt-4"
    assert json.loads((tmp_path / "cfg.json").read_text())["current_model"] == "openai"


def test_models_switch_clears_session_override(tmp_path):
    handler = make_handler(tmp_path)
    config = handler.agent.config
    config.model_override = "hermes-3"
    config.api_key_override = "sk-session"
    handler.handle("/models openai")
    assert config.active_model_key == "openai"
    assert handler.agent.client.model.name == "gpt-4"
    assert handler.agent.client.model.api_key == "sk-session"
    assert "sk-session" not in (tmp_path / "cfg.json").read_text()


def test_models_unknown_key(tmp_path):
    handler = make_handler(tmp_path)
    handler.handle("/models nope")
    assert "Model 'nope' not found" in out(handler)
    assert handler.agent.config.current_model == "qwen3-coder"


def test_models_listing_masks_keys(tmp_path):
    handler = make_handler(tmp_path)
    handler.agent.config.models["openai"].api_key = "sk-abcdef1234"
    handler.handle("/models")
    assert "***1234" in out(handler)
    assert "sk-abcdef" not in out(handler)


def test_permissions_list_and_remove(tmp_path):
    handler = make_handler(tmp_path)
    handler.agent.permissions.grant(str(tmp_path / "proj"))
    handler.handle("/permissions")
    assert f"1. {tmp_path / 'proj'}" in out(handler)

    handler.handle(f"/permissions remove {tmp_path / 'proj'}")
    assert handler.agent.permissions.folders() == []
    assert json.loads((tmp_path / "cfg.json").read_text())["approved_folders"] == []


def test_parse_decision():
    assert parse_decision("") is Decision.EXECUTE
    assert parse_decision(" Y ") is Decision.EXECUTE
    assert parse_decision("s") is Decision.SKIP
    assert parse_decision("b") is Decision.BACKGROUND
    assert parse_decision("i") is Decision.INTERRUPT
    assert parse_decision("n") is Decision.DENY
    assert parse_decision("whatever") is Decision.DENY


def test_parse_yes():
    assert parse_yes("")
    assert parse_yes("yes")
    assert not parse_yes("n")

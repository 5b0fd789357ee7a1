"""Configuration management for mcode."""

import os
import json
from pathlib import Path
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional
from dotenv import load_dotenv

from .logger import get_logger

log = get_logger("config")


def get_config_path() -> Path:
    """Get path to the global config: ~/.mcode-config.json"""
    return Path.home() / ".mcode-config.json"


@dataclass
class ModelConfig:
    """One entry of the model table."""

    name: str
    base_url: str
    api_key: str = ""

    def to_dict(self) -> Dict[str, str]:
        data = {"name": self.name, "base_url": self.base_url}
        if self.api_key:
            data["api_key"] = self.api_key
        return data


def default_models() -> Dict[str, ModelConfig]:
    return {
        "qwen3-coder": ModelConfig(
            name="lmstudio-community/qwen3-coder-30b-a3b-instruct-mlx@8bit",
            base_url="http://localhost:1234/v1",
        ),
        "hermes-3": ModelConfig(
            name="NousResearch/Hermes-3-Llama-3.1-8B-GGUF",
            base_url="http://localhost:1234/v1",
        ),
        "llama-3.2": ModelConfig(
            name="bartowski/Llama-3.2-3B-Instruct-GGUF",
            base_url="http://localhost:1234/v1",
        ),
        "openai": ModelConfig(
            name="gpt-4",
            base_url="https://api.openai.com/v1",
        ),
    }


@dataclass
class Config:
    """Persistent configuration plus the context-control tunables."""

    current_model: str = "qwen3-coder"
    models: Dict[str, ModelConfig] = field(default_factory=default_models)
    approved_folders: List[str] = field(default_factory=list)

    # Context control
    context_high_water: int = 25000
    keep_recent: int = 6
    context_window: int = 32000
    max_response_tokens: int = 8000
    fallback_max_tokens: int = 2000

    command_timeout: float = 30.0
    stream: bool = True

    path: Optional[Path] = None

    # Session-only overrides (environment, .env, --model); never written by save()
    model_override: Optional[str] = None
    base_url_override: Optional[str] = None
    api_key_override: Optional[str] = field(default=None, repr=False)

    @property
    def active_model_key(self) -> str:
        return self.model_override or self.current_model

    def _saved_model(self) -> ModelConfig:
        if self.current_model in self.models:
            return self.models[self.current_model]
        if not self.models:
            raise ValueError("No models configured")
        key = next(iter(self.models))
        log.warning("Current model '%s' not found, using '%s'", self.current_model, key)
        return self.models[key]

    @property
    def model(self) -> ModelConfig:
        """The active model with session overrides applied.

        An override key that names no configured entry is used as a raw
        model name on the saved model's endpoint.
        """
        key = self.model_override
        if key and key in self.models:
            model = self.models[key]
        elif key:
            model = ModelConfig(name=key, base_url=self._saved_model().base_url)
        else:
            model = self._saved_model()
        if self.base_url_override or self.api_key_override:
            model = replace(
                model,
                base_url=self.base_url_override or model.base_url,
                api_key=self.api_key_override or model.api_key,
            )
        return model

    @classmethod
    def from_dict(cls, data: Dict[str, Any], path: Optional[Path] = None) -> "Config":
        models = {
            key: ModelConfig(
                name=entry.get("name", key),
                base_url=entry.get("base_url", ""),
                api_key=entry.get("api_key", ""),
            )
            for key, entry in (data.get("models") or {}).items()
        }
        defaults = cls()
        return cls(
            current_model=data.get("current_model", defaults.current_model),
            models=models or default_models(),
            approved_folders=list(data.get("approved_folders") or []),
            context_high_water=int(data.get("context_high_water", defaults.context_high_water)),
            keep_recent=int(data.get("keep_recent", defaults.keep_recent)),
            context_window=int(data.get("context_window", defaults.context_window)),
            max_response_tokens=int(data.get("max_response_tokens", defaults.max_response_tokens)),
            fallback_max_tokens=int(data.get("fallback_max_tokens", defaults.fallback_max_tokens)),
            command_timeout=float(data.get("command_timeout", defaults.command_timeout)),
            stream=_read_bool(data, "stream", defaults.stream),
            path=path,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "current_model": self.current_model,
            "models": {key: m.to_dict() for key, m in self.models.items()},
            "approved_folders": list(self.approved_folders),
            "context_high_water": self.context_high_water,
            "keep_recent": self.keep_recent,
            "context_window": self.context_window,
            "max_response_tokens": self.max_response_tokens,
            "fallback_max_tokens": self.fallback_max_tokens,
            "command_timeout": self.command_timeout,
            "stream": self.stream,
        }

    @classmethod
    def load(cls, path: Optional[Path] = None, env_path: Optional[Path] = None) -> "Config":
        """Load configuration from JSON, creating the file with defaults if missing.

        Priority (later overrides earlier):
        1. ~/.mcode-config.json (or ``path``)
        2. MCODE_MODEL / MCODE_BASE_URL / MCODE_API_KEY from the environment or .env
        """
        path = path or get_config_path()
        config = None
        if path.exists():
            try:
                config = cls.from_dict(json.loads(path.read_text(encoding="utf-8")), path=path)
            except (json.JSONDecodeError, OSError) as e:
                log.warning("Failed to read config %s: %s", path, e)
        if config is None:
            config = cls(path=path)
            try:
                config.save()
            except OSError as e:
                log.warning("Failed to write default config %s: %s", path, e)

        if env_path and env_path.exists():
            load_dotenv(env_path)
        else:
            load_dotenv()
        config.apply_env()
        return config

    def apply_env(self) -> None:
        """Read MCODE_* overrides into the session-only layer."""
        self.model_override = os.getenv("MCODE_MODEL") or None
        self.base_url_override = os.getenv("MCODE_BASE_URL") or None
        self.api_key_override = os.getenv("MCODE_API_KEY") or None
        if self.model_override or self.base_url_override or self.api_key_override:
            log.info("Environment overrides active for model '%s'", self.active_model_key)

    def select_model(self, key: str) -> ModelConfig:
        """Make ``key`` the saved current model, dropping any model override."""
        if key not in self.models:
            raise KeyError(key)
        self.current_model = key
        self.model_override = None
        return self.model

    def save(self) -> None:
        """Write the configuration back to its JSON file."""
        path = self.path or get_config_path()
        path.write_text(json.dumps(self.to_dict(), indent=2), encoding="utf-8")
        log.debug("Saved config to %s", path)


def _read_bool(data: Dict[str, Any], key: str, default: bool) -> bool:
    """Only JSON true/false are accepted; anything else keeps the default."""
    value = data.get(key, default)
    if isinstance(value, bool):
        return value
    log.warning("Config value %s=%r is not true or false, using %s", key, value, default)
    return default

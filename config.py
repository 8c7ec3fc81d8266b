#!/usr/bin/env python3
"""
Configuration management for the I.R.I.S assistant.

Settings live in a JSON file under ``~/.config/iris-assistant``. API keys never
go into that file; they are resolved by :func:`load_api_key` from the
environment (``.env`` honoured), the system keyring, or a plaintext key file.
"""
from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

KEYRING_SERVICE = "iris_assistant"

API_KEY_ENV = {
    "gemini": "GEMINI_API_KEY",
    "grok": "GROK_API_KEY",
    "openweather": "OPENWEATHER_API_KEY",
}

DEFAULT_CONFIG = {
    "ai": {
        "default_mode": "grok",
        "offline_mode": False,
        "ollama_url": "http://localhost:11434/api/generate",
        "ollama_model": "llama2",
        "gemini_url": "https://generativelanguage.googleapis.com/v1beta/models/gemini-pro:generateContent",
        "grok_api_url": "https://api.x.ai/v1/chat/completions",
        "grok_model": "grok-beta",
        "connect_timeout": 15.0,
        "read_timeout_online": 30.0,
        "read_timeout_ollama": 120.0,
        "temperature": 0.7,
        "history_size": 10,
    },
    "network": {
        "test_hosts": ["8.8.8.8", "1.1.1.1"],
        "http_endpoints": ["https://www.google.com", "https://www.cloudflare.com"],
        "ping_timeout": 3.0,
        "http_timeout": 5.0,
        "fast_threshold_ms": 1000,
        "cache_ttl_seconds": 30.0,
    },
    "planner": {
        "step_delay": 1.5,
        "wait_seconds": 2.0,
        "max_steps": 20,
    },
    "system": {
        "browser": "firefox",
        "volume_command": "pactl",
        "screenshot_dir": "",
        "wake_words": ["jarvis", "hey jarvis"],
    },
    "weather": {
        "default_city": "London",
        "api_url": "https://api.openweathermap.org/data/2.5/weather",
        "timeout": 10.0,
    },
    "paths": {
        "config_dir": "~/.config/iris-assistant",
        "log_dir": "",
    },
    "security": {
        "prefer_keyring": True,
        "allow_plaintext_fallback": True,
    },
    "logging": {
        "level": "INFO",
    },
}


@dataclass
class AIConfig:
    default_mode: str = "grok"
    offline_mode: bool = False
    ollama_url: str = "http://localhost:11434/api/generate"
    ollama_model: str = "llama2"
    gemini_url: str = "https://generativelanguage.googleapis.com/v1beta/models/gemini-pro:generateContent"
    grok_api_url: str = "https://api.x.ai/v1/chat/completions"
    grok_model: str = "grok-beta"
    connect_timeout: float = 15.0
    read_timeout_online: float = 30.0
    read_timeout_ollama: float = 120.0
    temperature: float = 0.7
    history_size: int = 10


@dataclass
class NetworkConfig:
    test_hosts: List[str] = field(default_factory=lambda: ["8.8.8.8", "1.1.1.1"])
    http_endpoints: List[str] = field(
        default_factory=lambda: ["https://www.google.com", "https://www.cloudflare.com"]
    )
    ping_timeout: float = 3.0
    http_timeout: float = 5.0
    fast_threshold_ms: int = 1000
    cache_ttl_seconds: float = 30.0


@dataclass
class PlannerConfig:
    step_delay: float = 1.5
    wait_seconds: float = 2.0
    max_steps: int = 20


@dataclass
class SystemConfig:
    browser: str = "firefox"
    volume_command: str = "pactl"
    screenshot_dir: str = ""
    wake_words: List[str] = field(default_factory=lambda: ["jarvis", "hey jarvis"])


@dataclass
class WeatherConfig:
    default_city: str = "London"
    api_url: str = "https://api.openweathermap.org/data/2.5/weather"
    timeout: float = 10.0


@dataclass
class PathsConfig:
    config_dir: str = "~/.config/iris-assistant"
    log_dir: str = ""


@dataclass
class SecurityConfig:
    prefer_keyring: bool = True
    allow_plaintext_fallback: bool = True


@dataclass
class LoggingConfig:
    level: str = "INFO"


@dataclass
class AssistantConfig:
    ai: AIConfig
    network: NetworkConfig
    planner: PlannerConfig
    system: SystemConfig
    weather: WeatherConfig
    paths: PathsConfig
    security: SecurityConfig
    logging: LoggingConfig

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> AssistantConfig:
        return cls(
            ai=AIConfig(**data.get("ai", {})),
            network=NetworkConfig(**data.get("network", {})),
            planner=PlannerConfig(**data.get("planner", {})),
            system=SystemConfig(**data.get("system", {})),
            weather=WeatherConfig(**data.get("weather", {})),
            paths=PathsConfig(**data.get("paths", {})),
            security=SecurityConfig(**data.get("security", {})),
            logging=LoggingConfig(**data.get("logging", {})),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ai": asdict(self.ai),
            "network": asdict(self.network),
            "planner": asdict(self.planner),
            "system": asdict(self.system),
            "weather": asdict(self.weather),
            "paths": asdict(self.paths),
            "security": asdict(self.security),
            "logging": asdict(self.logging),
        }

    @property
    def config_dir(self) -> Path:
        return Path(os.path.expanduser(self.paths.config_dir))

    @property
    def log_dir(self) -> Path:
        if self.paths.log_dir:
            return Path(os.path.expanduser(self.paths.log_dir))
        return self.config_dir / "logs"


class ConfigManager:
    def __init__(self, config_file: Optional[Path] = None):
        if config_file is None:
            config_dir = Path(os.path.expanduser(DEFAULT_CONFIG["paths"]["config_dir"]))
            config_file = config_dir / "config.json"
        self.config_file = Path(config_file)
        self._config: Optional[AssistantConfig] = None

    @property
    def config(self) -> AssistantConfig:
        if self._config is None:
            self._config = self._load_config()
        return self._config

    def _load_config(self) -> AssistantConfig:
        data: Dict[str, Any] = {}
        if self.config_file.exists():
            try:
                with open(self.config_file, "r") as f:
                    data = json.load(f)
            except Exception as e:
                print(f"Warning: Failed to load config {self.config_file}: {e}")
                data = {}
        merged = self._deep_merge(DEFAULT_CONFIG, data)
        merged = self._apply_env_overrides(merged)
        return AssistantConfig.from_dict(merged)

    def _apply_env_overrides(self, data: Dict[str, Any]) -> Dict[str, Any]:
        load_dotenv()
        ai = dict(data.get("ai", {}))
        url = os.getenv("GROK_API_URL", "").strip()
        if url:
            ai["grok_api_url"] = url
        model = os.getenv("GROK_MODEL", "").strip()
        if model:
            ai["grok_model"] = model
        return {**data, "ai": ai}

    def save_config(self) -> None:
        try:
            self.config_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file, "w") as f:
                json.dump(self.config.to_dict(), f, indent=2)
            try:
                os.chmod(self.config_file, 0o600)
            except OSError:
                pass
        except Exception as e:
            print(f"Error saving config: {e}")

    def update_config(self, updates: Dict[str, Any]) -> None:
        current = self.config.to_dict()
        merged = self._deep_merge(current, updates)
        self._config = AssistantConfig.from_dict(merged)
        self.save_config()

    def _deep_merge(self, base: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
        result = base.copy()
        for key, value in update.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value
        return result


def _key_file(provider: str, config_dir: Path) -> Path:
    return config_dir / f"{provider}_api_key"


def load_api_key(provider: str, config: Optional[AssistantConfig] = None) -> str:
    """
    Resolve an API key for ``provider`` ("gemini", "grok", "openweather").

    Priority:
    1. Environment variable (a ``.env`` in the working directory is loaded first)
    2. System keyring, service ``iris_assistant``
    3. Plaintext file ``<config_dir>/<provider>_api_key``

    Returns an empty string when nothing is configured.
    """
    if config is None:
        config = AssistantConfig.from_dict(DEFAULT_CONFIG)
    load_dotenv()

    env_name = API_KEY_ENV.get(provider, f"{provider.upper()}_API_KEY")
    key = os.getenv(env_name, "").strip()
    if key:
        logger.debug(f"Using {provider} key from environment variable {env_name}")
        return key

    if config.security.prefer_keyring:
        try:
            import keyring
            key = (keyring.get_password(KEYRING_SERVICE, f"{provider}_api_key") or "").strip()
            if key:
                logger.debug(f"Using {provider} key from system keyring")
                return key
        except Exception as e:
            logger.warning(f"Failed to access keyring: {e}")

    if config.security.allow_plaintext_fallback:
        path = _key_file(provider, config.config_dir)
        if path.is_file():
            try:
                key = path.read_text(encoding="utf-8").strip()
                if key:
                    logger.debug(f"Using {provider} key from config file: {path}")
                    return key
            except OSError as e:
                logger.warning(f"Failed to read key file {path}: {e}")

    logger.info(f"No API key configured for {provider}")
    return ""


def store_api_key(provider: str, key: str, config: Optional[AssistantConfig] = None) -> str:
    """Store a key in the keyring, or the plaintext file when allowed. Returns where it went."""
    if config is None:
        config = AssistantConfig.from_dict(DEFAULT_CONFIG)
    if config.security.prefer_keyring:
        try:
            import keyring
            keyring.set_password(KEYRING_SERVICE, f"{provider}_api_key", key)
            return "keyring"
        except Exception as e:
            logger.warning(f"Keyring unavailable: {e}")
    if not config.security.allow_plaintext_fallback:
        raise RuntimeError("Keyring unavailable and plaintext key storage is disabled")
    path = _key_file(provider, config.config_dir)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(key.strip() + "\n", encoding="utf-8")
    try:
        os.chmod(path, 0o600)
    except OSError:
        pass
    return str(path)

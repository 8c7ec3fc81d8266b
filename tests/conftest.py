import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

import config  # noqa: E402
from local_agent import context_log  # noqa: E402
from utils import runner  # noqa: E402


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """Keep logs in tmp_path and hide real API keys, .env files and keyrings."""
    import keyring

    monkeypatch.setattr(runner, "LOG_FILE", tmp_path / "command_log.jsonl")
    monkeypatch.setattr(context_log, "LOG_FILE", tmp_path / "context_log.json")
    monkeypatch.setattr(config, "load_dotenv", lambda *a, **k: False)
    monkeypatch.setattr(keyring, "get_password", lambda service, name: None)
    for name in list(config.API_KEY_ENV.values()) + ["GROK_API_URL", "GROK_MODEL"]:
        monkeypatch.delenv(name, raising=False)
    yield


@pytest.fixture
def assistant_config(tmp_path):
    data = config.ConfigManager()._deep_merge(config.DEFAULT_CONFIG, {
        "paths": {"config_dir": str(tmp_path / "cfg")},
    })
    return config.AssistantConfig.from_dict(data)

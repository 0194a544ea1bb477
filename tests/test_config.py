import logging
import os

import pytest

from Config import DEFAULT_DB_PATH, Settings


@pytest.fixture()
def clean_env(monkeypatch):
    # load_dotenv writes to os.environ; keep it on a throwaway copy
    env = {k: v for k, v in os.environ.items()
           if k not in {"DB_PATH", "DISCORD_WEBHOOK_URL", "ALERT_THRESHOLD_C", "PORT", "LOG_LEVEL"}}
    monkeypatch.setattr(os, "environ", env)
    return env


def test_defaults_without_env(clean_env, tmp_path) -> None:
    s = Settings.from_env(env_file=str(tmp_path / "missing.env"))

    assert s.db_path == DEFAULT_DB_PATH
    assert s.webhook_url == ""
    assert s.alert_threshold_c == 30.0
    assert s.port == 3000


def test_env_file_is_loaded_but_real_env_wins(clean_env, tmp_path) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text(
        "DISCORD_WEBHOOK_URL=https://discord.test/api/webhooks/1\n"
        "ALERT_THRESHOLD_C=28.5\n"
        "PORT=8000\n"
    )
    clean_env["PORT"] = "9000"

    s = Settings.from_env(env_file=str(env_file))

    assert s.webhook_url == "https://discord.test/api/webhooks/1"
    assert s.alert_threshold_c == 28.5
    assert s.port == 9000


def test_configure_logging_accepts_unknown_level(monkeypatch) -> None:
    seen = {}
    monkeypatch.setattr(logging, "basicConfig", lambda **kw: seen.update(kw))

    Settings(log_level="chatty").configure_logging()

    assert seen["level"] == logging.INFO

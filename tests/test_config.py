"""Tests for environment-driven settings."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from hostinsight.config import Settings


def test_defaults(monkeypatch):
    monkeypatch.delenv("HOSTINSIGHT_API_KEY", raising=False)
    cfg = Settings(_env_file=None)

    assert cfg.api_key == ""
    assert cfg.model == "gemini-1.5-flash"
    assert cfg.poll_interval == 2.0
    assert cfg.process_limit == 10
    assert cfg.request_deadline == 60.0


def test_reads_prefixed_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("HOSTINSIGHT_API_KEY", "secret")
    monkeypatch.setenv("HOSTINSIGHT_POLL_INTERVAL", "0.5")
    monkeypatch.setenv("HOSTINSIGHT_PROCESS_LIMIT", "25")
    monkeypatch.setenv("HOSTINSIGHT_DATA_DIR", str(tmp_path))

    cfg = Settings(_env_file=None)

    assert cfg.api_key == "secret"
    assert cfg.poll_interval == 0.5
    assert cfg.process_limit == 25
    assert cfg.log_path == Path(tmp_path) / "hostinsight.log"
    assert cfg.report_path == Path(tmp_path) / "insight.html"


def test_reads_env_file(monkeypatch, tmp_path):
    monkeypatch.delenv("HOSTINSIGHT_MODEL", raising=False)
    env_file = tmp_path / ".env"
    env_file.write_text("HOSTINSIGHT_MODEL=gemini-2.0-flash\nUNRELATED=1\n")

    cfg = Settings(_env_file=env_file)

    assert cfg.model == "gemini-2.0-flash"


@pytest.mark.parametrize(
    "name, value",
    [
        ("HOSTINSIGHT_POLL_INTERVAL", "0"),
        ("HOSTINSIGHT_PROCESS_LIMIT", "0"),
        ("HOSTINSIGHT_REQUEST_DEADLINE", "-1"),
    ],
)
def test_rejects_invalid_values(monkeypatch, name, value):
    monkeypatch.setenv(name, value)
    with pytest.raises(ValidationError):
        Settings(_env_file=None)

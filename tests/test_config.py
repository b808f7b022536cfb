from pathlib import Path

from core.config import AppSettings, write_user_env_vars


def test_defaults(monkeypatch):
    for name in ("APIEXEC_MAX_REDIRECTS", "APIEXEC_REQUEST_TIMEOUT_SECONDS"):
        monkeypatch.delenv(name, raising=False)
    settings = AppSettings(_env_file=None)

    execution = settings.execution_settings()
    assert execution.timeout_seconds == 0
    assert execution.max_redirects == 5
    assert execution.ignore_certificate_validation is False

    config = settings.execution_config()
    assert config.concurrent_calls >= 1


def test_environment_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("APIEXEC_MAX_REDIRECTS", "0")
    monkeypatch.setenv("APIEXEC_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("APIEXEC_CONCURRENT_CALLS", "4")
    settings = AppSettings(_env_file=None)

    assert settings.execution_settings().max_redirects == 0
    assert settings.execution_config().concurrent_calls == 4
    assert settings.store_dir() == Path(tmp_path) / "store"


def test_write_user_env_vars_updates_in_place(tmp_path):
    env_path = tmp_path / "cfg" / ".env"
    write_user_env_vars({"APIEXEC_MAX_REDIRECTS": "2"}, env_path=env_path)
    write_user_env_vars({"APIEXEC_USER_AGENT": "me/1", "APIEXEC_MAX_REDIRECTS": "3"}, env_path=env_path)

    lines = env_path.read_text(encoding="utf-8").splitlines()
    assert "APIEXEC_MAX_REDIRECTS=3" in lines
    assert "APIEXEC_USER_AGENT=me/1" in lines
    assert sum(line.startswith("APIEXEC_MAX_REDIRECTS") for line in lines) == 1

"""Tests for YAML + environment configuration."""
import yaml

from pkg.taskboard.config import ENV_OVERRIDES, Config


def _clear_env(monkeypatch):
    for name in list(ENV_OVERRIDES) + ["OPENAI_API_KEY"]:
        monkeypatch.delenv(name, raising=False)


def test_defaults_without_file(tmp_path, monkeypatch):
    _clear_env(monkeypatch)
    cfg = Config.load(str(tmp_path / "missing.yaml"))
    assert cfg.port == 3000
    assert cfg.api_prefix == "/api"
    assert cfg.llm_provider == "rules"
    assert cfg.ai_source_label == "AI Assistant"
    assert not cfg.db_path.startswith("~")
    assert cfg.secret_key


def test_yaml_values_and_unknown_keys(tmp_path, monkeypatch):
    _clear_env(monkeypatch)
    path = tmp_path / "taskboard.yaml"
    path.write_text(yaml.safe_dump({
        "port": 8080,
        "db_path": str(tmp_path / "tb.db"),
        "llm_model": "llama-3.1-8b-instant",
        "reconcile_workers": 2,
        "not_a_setting": True,
    }))
    cfg = Config.load(str(path))
    assert cfg.port == 8080
    assert cfg.db_path == str(tmp_path / "tb.db")
    assert cfg.llm_model == "llama-3.1-8b-instant"
    assert cfg.reconcile_workers == 2
    assert not hasattr(cfg, "not_a_setting")


def test_environment_overrides_file(tmp_path, monkeypatch):
    _clear_env(monkeypatch)
    path = tmp_path / "taskboard.yaml"
    path.write_text("llm_timeout: 10\nlog_level: INFO\n")
    monkeypatch.setenv("TASKBOARD_LLM_TIMEOUT", "2.5")
    monkeypatch.setenv("TASKBOARD_LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("TASKBOARD_DB", str(tmp_path / "env.db"))

    cfg = Config.load(str(path))
    assert cfg.llm_timeout == 2.5
    assert cfg.log_level == "DEBUG"
    assert cfg.db_path == str(tmp_path / "env.db")


def test_bad_env_value_keeps_file_value(tmp_path, monkeypatch, caplog):
    _clear_env(monkeypatch)
    path = tmp_path / "taskboard.yaml"
    path.write_text("llm_timeout: 10\n")
    monkeypatch.setenv("TASKBOARD_LLM_TIMEOUT", "soon")
    with caplog.at_level("WARNING", logger="pkg.taskboard.config"):
        assert Config.load(str(path)).llm_timeout == 10
    assert "TASKBOARD_LLM_TIMEOUT" in caplog.text
    assert "expected float" in caplog.text


def test_api_key_selects_openai_provider(tmp_path, monkeypatch):
    _clear_env(monkeypatch)
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    cfg = Config.load(str(tmp_path / "missing.yaml"))
    assert cfg.llm_provider == "openai"
    assert cfg.llm_api_key == "sk-test"


def test_explicit_provider_wins(tmp_path, monkeypatch):
    _clear_env(monkeypatch)
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("TASKBOARD_LLM_PROVIDER", "Rules")
    assert Config.load(str(tmp_path / "missing.yaml")).llm_provider == "rules"

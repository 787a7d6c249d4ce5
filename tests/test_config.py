from __future__ import annotations

from pathlib import Path

import pytest

from copilot_server.config import load_config
from copilot_server.llm import create_from_config, model_settings, resolve_api_key


def test_missing_file_falls_back_to_defaults(tmp_path: Path, clean_env):
    cfg = load_config(str(tmp_path / "nope.yaml"))
    assert cfg["model"]["temperature"] == 0.4
    assert cfg["acquisition"]["timeout"] == 15
    assert cfg["knowledge"]["seed_sample"] is True


def test_file_values_merge_over_defaults(tmp_path: Path, clean_env):
    path = tmp_path / "cfg.yaml"
    path.write_text("model:\n  name: gemini-2.5-flash\nknowledge:\n  data_dir: /tmp/kb\n", encoding="utf-8")

    cfg = load_config(str(path))

    assert cfg["model"]["name"] == "gemini-2.5-flash"
    assert cfg["model"]["temperature"] == 0.4
    assert cfg["knowledge"]["data_dir"] == "/tmp/kb"
    assert cfg["knowledge"]["seed_sample"] is True


def test_env_overrides_are_coerced(tmp_path: Path, clean_env, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("COPILOT__MODEL__TEMPERATURE", "0.2")
    monkeypatch.setenv("COPILOT__ACQUISITION__TIMEOUT", "20")
    monkeypatch.setenv("COPILOT__KNOWLEDGE__SEED_SAMPLE", "false")

    cfg = load_config(str(tmp_path / "nope.yaml"))

    assert cfg["model"]["temperature"] == 0.2
    assert cfg["acquisition"]["timeout"] == 20
    assert cfg["knowledge"]["seed_sample"] is False


def test_config_env_var_selects_file(tmp_path: Path, clean_env, monkeypatch: pytest.MonkeyPatch):
    path = tmp_path / "other.yaml"
    path.write_text("logging:\n  level: DEBUG\n", encoding="utf-8")
    monkeypatch.setenv("COPILOT_CONFIG", str(path))
    assert load_config()["logging"]["level"] == "DEBUG"


def test_invalid_yaml_shape_raises(tmp_path: Path, clean_env):
    path = tmp_path / "list.yaml"
    path.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(RuntimeError):
        load_config(str(path))


def test_api_key_comes_from_config_or_env(clean_env, monkeypatch: pytest.MonkeyPatch):
    assert resolve_api_key({"model": {}}) is None
    monkeypatch.setenv("GEMINI_API_KEY", "env-key")
    assert resolve_api_key({"model": {}}) == "env-key"
    assert resolve_api_key({"model": {"api_key": "cfg-key"}}) == "cfg-key"


def test_model_settings_defaults():
    assert model_settings({}) == {"name": "gemini-3-pro-preview", "temperature": 0.4}


@pytest.mark.asyncio
async def test_missing_key_fails_as_auth_error(clean_env):
    from copilot_server.errors import ModelInvocationError
    from copilot_server.llm import ChatRequest

    model = create_from_config({"model": {}})
    with pytest.raises(ModelInvocationError) as info:
        await model.send(ChatRequest(model="m", system_instruction="s", message="hi"))
    assert info.value.auth_failure is True

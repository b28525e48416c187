# tests/core/config/test_make_settings.py
"""
Testes da resolução de settings do engine (load_settings).

Os testes asseguram que:
- sem configuração, os defaults embutidos são usados
- configuração do projeto e overrides nomeados têm precedência crescente
- valores fora do domínio são rejeitados com InvalidSettingError
"""

from pathlib import Path

import pytest

from drakeflow.core.config import DEFAULT_CONFIG, InvalidSettingError, load_settings


def test_defaults():
    s = load_settings()

    assert s.cache_path == ".drakeflow"
    assert s.jobs == 1
    assert s.parallelism == "loop"
    assert s.keep_going is False
    assert s.memory_strategy == "speed"
    assert s.trigger_defaults == {"command": True, "depend": True, "file": True, "seed": True, "missing": True}
    assert s.to_config() == DEFAULT_CONFIG


def test_overrides_beat_project_config():
    s = load_settings({"engine": {"jobs": 2, "parallelism": "threads"}}, jobs=8)

    assert s.jobs == 8
    assert s.parallelism == "threads"


def test_none_overrides_are_ignored():
    assert load_settings(jobs=None).jobs == 1


def test_config_file(tmp_path: Path, project_like_config_local_yaml):
    path = tmp_path / "drakeflow.yaml"
    path.write_text(project_like_config_local_yaml, encoding="utf-8")

    s = load_settings(path)
    assert s.jobs == 4
    assert s.is_enabled("report") is False
    assert s.is_enabled("anything_else") is True


def test_settings_can_be_reloaded_with_overrides():
    base = load_settings(jobs=3)
    again = load_settings(base, keep_going=True)

    assert again.jobs == 3
    assert again.keep_going is True


def test_trigger_defaults_can_be_changed():
    s = load_settings({"trigger": {"seed": False}})
    assert s.trigger_defaults["seed"] is False
    assert s.trigger_defaults["command"] is True


@pytest.mark.parametrize(
    "overrides",
    [
        {"jobs": 0},
        {"retries": -1},
        {"memory_strategy": "lookahead"},
        {"parallelism": ""},
        {"unknown_setting": 1},
    ],
)
def test_invalid_settings_are_rejected(overrides):
    with pytest.raises(InvalidSettingError):
        load_settings(**overrides)


def test_unknown_trigger_flag_is_rejected():
    with pytest.raises(InvalidSettingError):
        load_settings({"trigger": {"always": True}})

# tests/core/config/test_config_merge.py
"""
Testes do deep-merge de configuração.

Invariantes:
    - base e override nunca são mutados
    - dicts são mesclados recursivamente; listas e escalares são sobrescritos
    - conflitos de tipo são erros; None no override não sobrescreve
"""

import pytest

from drakeflow.core.config.errors import ConfigTypeConflictError
from drakeflow.core.config.merge import deep_merge


def test_merge_simple_override():
    base = {"a": 1, "b": 2}
    override = {"b": 99}

    out = deep_merge(base, override)
    assert out == {"a": 1, "b": 99}
    assert base == {"a": 1, "b": 2}
    assert override == {"b": 99}


def test_merge_nested_dict():
    base = {"engine": {"jobs": 1, "parallelism": "loop"}}
    override = {"engine": {"jobs": 4}}

    assert deep_merge(base, override) == {"engine": {"jobs": 4, "parallelism": "loop"}}


def test_merge_list_override_total():
    base = {"targets": {"order": ["a", "b"]}}
    override = {"targets": {"order": ["c"]}}

    assert deep_merge(base, override) == {"targets": {"order": ["c"]}}


def test_none_override_keeps_base():
    assert deep_merge({"engine": {"seed": 3}}, {"engine": {"seed": None}}) == {"engine": {"seed": 3}}


def test_int_over_float_is_a_type_conflict():
    with pytest.raises(ConfigTypeConflictError):
        deep_merge({"ratio": 0.5}, {"ratio": 1})


def test_merge_type_conflict_raises():
    with pytest.raises(ConfigTypeConflictError):
        deep_merge({"engine": {"jobs": 1}}, {"engine": {"jobs": "many"}})

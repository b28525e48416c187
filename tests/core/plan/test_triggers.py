# tests/core/plan/test_triggers.py
"""Testes de construção e resolução de triggers."""

import pytest

from drakeflow.core.exceptions import AnalysisError, PlanValidationError
from drakeflow.core.plan import Trigger, trigger


def test_resolve_fills_only_unset_flags():
    t = trigger(command=False).resolve({"command": True, "depend": False, "file": True, "seed": True, "missing": True})

    assert t.command is False
    assert t.depend is False
    assert t.file is True


def test_codes_lists_condition_and_change():
    assert trigger(condition="x > 1", change="version").codes() == ["x > 1", "version"]
    assert trigger(condition=True).codes() == []
    assert Trigger().codes() == []


def test_invalid_mode_is_rejected():
    with pytest.raises(PlanValidationError):
        trigger(mode="sometimes")


def test_non_boolean_flag_is_rejected():
    with pytest.raises(PlanValidationError):
        trigger(command="yes")


def test_invalid_condition_code_is_rejected():
    with pytest.raises(AnalysisError):
        trigger(condition="x >")

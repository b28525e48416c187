# tests/core/engine/test_staleness_rules.py
"""
Testes das regras de staleness (outdated_reasons, should_build).

Os testes exercitam as regras isoladamente, sem cache nem grafo:
cada razão é provocada alterando um único campo do metadata registrado.
"""

import pytest

from drakeflow.core.engine.staleness import TargetFingerprint, outdated_reasons, should_build
from drakeflow.core.plan import Trigger, trigger


DEFAULTS = {"command": True, "depend": True, "file": True, "seed": True, "missing": True}

CURRENT = TargetFingerprint(command="cmd", depend="dep", seed=7, input_files={"in.csv": "h1"})


def _meta(**changes):
    meta = {
        "status": "built",
        "command_hash": "cmd",
        "depend_hash": "dep",
        "seed": 7,
        "input_files": {"in.csv": "h1"},
        "output_files": {"out.csv": "o1"},
        "change_hash": None,
    }
    meta.update(changes)
    return meta


def _reasons(meta, trig=None, *, has_value=True, outputs=None, change_hash=None, condition=False):
    return outdated_reasons(
        meta=meta,
        current=CURRENT,
        trigger=(trig or Trigger()).resolve(DEFAULTS),
        has_value=has_value,
        output_files={"out.csv": "o1"} if outputs is None else outputs,
        change_hash=change_hash,
        condition=condition,
    )


def test_unchanged_target_has_no_reasons():
    assert _reasons(_meta()) == []


def test_never_built_target_is_missing():
    assert _reasons(None) == ["missing"]


@pytest.mark.parametrize(
    "changes, reason",
    [
        ({"command_hash": "other"}, "command"),
        ({"depend_hash": "other"}, "depend"),
        ({"input_files": {"in.csv": "h2"}}, "file"),
        ({"output_files": {"out.csv": "o2"}}, "file"),
        ({"seed": 8}, "seed"),
        ({"status": "failed"}, "failed"),
    ],
)
def test_each_fingerprint_change_has_its_reason(changes, reason):
    assert _reasons(_meta(**changes)) == [reason]


def test_deleted_output_file_is_a_file_reason():
    assert _reasons(_meta(), outputs={"out.csv": None}) == ["file"]


def test_missing_value():
    assert _reasons(_meta(), has_value=False) == ["missing"]
    assert _reasons(_meta(), trigger(missing=False), has_value=False) == []


def test_disabled_flags_suppress_reasons():
    meta = _meta(command_hash="other", seed=8)
    assert _reasons(meta, trigger(command=False, seed=False)) == []


def test_change_trigger_compares_value_hash():
    trig = trigger(change="version")
    assert _reasons(_meta(change_hash="v1"), trig, change_hash="v1") == []
    assert _reasons(_meta(change_hash="v1"), trig, change_hash="v2") == ["change"]


def test_reasons_follow_canonical_order():
    meta = _meta(status="failed", command_hash="x", seed=1)
    assert _reasons(meta, condition=True) == ["failed", "command", "seed", "condition"]


def test_whitelist_builds_on_any_reason():
    trig = trigger().resolve(DEFAULTS)
    assert should_build(["command"], trig, condition=False) is True
    assert should_build([], trig, condition=False) is False
    assert should_build(["condition"], trig, condition=True) is True


def test_blacklist_needs_condition_and_another_reason():
    trig = trigger(mode="blacklist").resolve(DEFAULTS)
    assert should_build(["command"], trig, condition=False) is False
    assert should_build(["command", "condition"], trig, condition=True) is True
    assert should_build(["condition"], trig, condition=True) is False


def test_condition_mode_ignores_other_reasons():
    trig = trigger(mode="condition").resolve(DEFAULTS)
    assert should_build(["command", "depend"], trig, condition=False) is False
    assert should_build(["condition"], trig, condition=True) is True


def test_missing_and_failed_always_build():
    for mode in ("whitelist", "blacklist", "condition"):
        trig = trigger(mode=mode).resolve(DEFAULTS)
        assert should_build(["missing"], trig, condition=False) is True
        assert should_build(["failed"], trig, condition=False) is True

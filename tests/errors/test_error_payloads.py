"""
Test — Payloads de erro de build (Guardrail)

Cenários em que um target não pode ser construído. Esperado:
- o `make` não levanta exceção
- o erro segue o schema canônico (DrakeErrorPayload) e bate com o snapshot
- o mesmo payload fica registrado no metadata do cache e no Manifest
"""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path

import pandas as pd
import pytest

from drakeflow import make, make_plan
from drakeflow.core.cache.store import Cache
from drakeflow.core.errors import DrakeErrorPayload, target_build_error
from drakeflow.core.exceptions import TransformError

from tests.errors._snapshot_helpers import assert_error_snapshot
from tests.fixtures import workflow_functions as wf


@pytest.fixture
def cache(tmp_path: Path) -> Cache:
    return Cache(tmp_path / "cache")


def test_target_build_error(cache: Cache) -> None:
    result = make(make_plan(bad="explode(1)"), envir={"explode": wf.explode}, cache=cache)

    error = result["bad"].error
    assert_error_snapshot("target_build_error.json", error)
    assert error["hint"]

    meta = cache.get_meta("bad")
    assert meta["error"] == {k: v for k, v in error.items() if k != "traceback"}
    assert result.manifest.targets["bad"]["error"]["type"] == "TARGET_BUILD_ERROR"


def test_dependency_unavailable(cache: Cache) -> None:
    plan = make_plan(bad="explode(1)", after="bad + 1")
    result = make(plan, envir={"explode": wf.explode}, cache=cache, keep_going=True)

    assert_error_snapshot("dependency_unavailable.json", result["after"].error)


def test_value_not_storable(cache: Cache) -> None:
    result = make(make_plan(gen="(i for i in range(3))"), envir={}, cache=cache)

    assert_error_snapshot("target_value_not_storable.json", result["gen"].error)
    assert cache.has_value("gen") is False


def test_missing_input_file(tmp_path: Path, cache: Cache, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    result = make(make_plan(raw="pd.read_csv(file_in('missing.csv'))"), envir={"pd": pd}, cache=cache)

    assert_error_snapshot("missing_input_file.json", result["raw"].error)


def test_payload_round_trip() -> None:
    payload = target_build_error(target="t", exc_type="KeyError", exc_message="'x'", attempts=2)
    again = DrakeErrorPayload.from_dict(payload.to_dict())

    assert again == payload
    assert again.details["attempts"] == 2


def test_from_dict_defaults() -> None:
    payload = DrakeErrorPayload.from_dict({"message": "x"})
    assert payload.type == "ENGINE_EXECUTION_ERROR"
    assert payload.details == {}


def test_exceptions_propagate_through_context_managers() -> None:
    @contextmanager
    def stage():
        yield

    with pytest.raises(TransformError) as info:
        with stage():
            raise TransformError(message="grid inválido", details={"target": "a"})

    assert info.value.details == {"target": "a"}
    assert info.value.__traceback__ is not None

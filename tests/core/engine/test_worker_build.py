# tests/core/engine/test_worker_build.py
"""
Testes da execução isolada de um target (build_target, evaluate_code).

Os testes asseguram que:
- o valor da última expressão do comando é retornado
- a seed do target torna a execução reprodutível e não vaza estado global
- warnings são capturados e exceções nunca escapam
- tentativas extras (retries) são respeitadas
"""

import random

import numpy as np

from drakeflow.core.engine.worker import BuildTask, ModuleRef, build_target, evaluate_code, pack_namespace, unpack_namespace
from tests.fixtures import workflow_functions as wf


def test_evaluate_code_returns_last_expression():
    assert evaluate_code("x = a + 1\nx * 2", {"a": 1}) == 4
    assert evaluate_code("y = 3", {}) is None


def test_markers_are_available_when_evaluating():
    assert evaluate_code("file_in('a.csv')", {}) == "a.csv"
    assert evaluate_code("ignore(5)", {}) == 5


def test_build_is_reproducible_for_the_same_seed():
    task = BuildTask(target="r", command="np.random.rand()", namespace={"np": np}, seed=11)

    first = build_target(task)
    second = build_target(task)
    other = build_target(BuildTask(target="r", command="np.random.rand()", namespace={"np": np}, seed=12))

    assert first.ok and second.ok
    assert first.value == second.value
    assert first.value != other.value


def test_global_random_state_is_restored():
    random.seed(5)
    expected = random.random()

    random.seed(5)
    build_target(BuildTask(target="r", command="random.random()", namespace={"random": random}, seed=1))
    assert random.random() == expected


def test_warnings_are_captured():
    outcome = build_target(BuildTask(target="n", command="noisy(1)", namespace={"noisy": wf.noisy}, seed=0))

    assert outcome.ok
    assert outcome.value == 2
    assert outcome.warnings == ["noisy is deprecated"]


def test_errors_are_returned_not_raised():
    outcome = build_target(BuildTask(target="b", command="explode(3)", namespace={"explode": wf.explode}, seed=0))

    assert outcome.ok is False
    assert outcome.attempts == 1
    assert outcome.error.exc_type == "ValueError"
    assert "cannot process 3" in outcome.error.exc_message
    assert "Traceback" in outcome.error.traceback


def test_retries_until_success():
    calls = []

    def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise RuntimeError("not yet")
        return "ok"

    outcome = build_target(BuildTask(target="f", command="flaky()", namespace={"flaky": flaky}, seed=0, retries=2))

    assert outcome.ok
    assert outcome.value == "ok"
    assert outcome.attempts == 3


def test_retries_are_exhausted():
    outcome = build_target(
        BuildTask(target="b", command="explode(1)", namespace={"explode": wf.explode}, seed=0, retries=1)
    )
    assert outcome.ok is False
    assert outcome.attempts == 2


def test_modules_travel_as_references():
    packed = pack_namespace({"np": np, "x": 1})

    assert packed["np"] == ModuleRef("numpy")
    assert unpack_namespace(packed)["np"] is np

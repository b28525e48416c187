# tests/api/test_api_queries.py
"""
Testes das consultas sobre o plano (sem construir targets).

Os testes asseguram que:
- `outdated` antecipa exatamente o que `make` reconstruiria
- `missed`, `tracked` e `deps_target` refletem o grafo de dependências
- `deps_profile` aponta qual fingerprint mudou
- `predict_runtime` soma estágios empacotados em `jobs` workers
"""

import pytest

from drakeflow import (
    dependency_graph,
    deps_profile,
    deps_target,
    make,
    make_plan,
    missed,
    outdated,
    predict_runtime,
    tracked,
)
from drakeflow.core.exceptions import UnknownTargetError
from tests.fixtures import workflow_functions as wf
from tests.fixtures.workflow_functions import slow_square  # noqa: F401


def _plan():
    return make_plan(a="n", b="a + 1", c="2")


def test_outdated_before_and_after_make(tmp_cache):
    envir = {"n": 1}
    assert outdated(_plan(), envir=envir, cache=tmp_cache) == ["a", "b", "c"]

    make(_plan(), envir=envir, cache=tmp_cache)
    assert outdated(_plan(), envir=envir, cache=tmp_cache) == []


def test_outdated_propagates_downstream(tmp_cache):
    make(_plan(), envir={"n": 1}, cache=tmp_cache)

    assert outdated(_plan(), envir={"n": 2}, cache=tmp_cache) == ["a", "b"]
    assert outdated(_plan(), envir={"n": 2}, cache=tmp_cache, targets=["c"]) == []


def test_outdated_matches_make(tmp_cache):
    make(_plan(), envir={"n": 1}, cache=tmp_cache)
    predicted = outdated(_plan(), envir={"n": 2}, cache=tmp_cache)

    assert make(_plan(), envir={"n": 2}, cache=tmp_cache).built == predicted


def test_envir_defaults_to_caller_globals(tmp_cache):
    plan = make_plan(x="slow_square(3)")

    assert missed(plan) == []
    assert outdated(plan, cache=tmp_cache) == ["x"]
    assert deps_target("x", plan).to_dict("records") == [{"name": "slow_square", "type": "import"}]


def test_missed():
    plan = make_plan(x="foo(1) + a", a="1", y="np.mean(x)")
    assert missed(plan, envir={}) == ["foo", "np"]
    assert missed(plan, envir={"foo": abs, "np": wf.np}) == []


def test_tracked(tmp_path):
    plan = make_plan(
        out="write_text(file_out('o.txt'), text)",
        n="count_chars(file_in('i.txt'))",
    )
    envir = {"write_text": wf.write_text, "count_chars": wf.count_chars, "text": "abc"}

    assert tracked(plan, envir=envir) == ["count_chars", "n", "out", "text", "write_text", "i.txt", "o.txt"]


def test_deps_target():
    plan = make_plan(a="1", b="add(a, file_in('x.csv'))", c="write_text(file_out('y.txt'), b)")
    envir = {"add": wf.add, "write_text": wf.write_text}

    b = deps_target("b", plan, envir=envir)
    assert b.to_dict("records") == [
        {"name": "a", "type": "target"},
        {"name": "add", "type": "import"},
        {"name": "x.csv", "type": "file"},
    ]

    c = deps_target("c", plan, envir=envir)
    assert {"name": "y.txt", "type": "file_out"} in c.to_dict("records")

    with pytest.raises(UnknownTargetError):
        deps_target("nope", plan, envir=envir)


def test_deps_profile(tmp_cache):
    make(_plan(), envir={"n": 1}, cache=tmp_cache)

    same = deps_profile("a", _plan(), envir={"n": 1}, cache=tmp_cache)
    assert list(same["hash"]) == ["command", "depend", "file", "seed"]
    assert not same["changed"].any()

    changed = deps_profile("a", _plan(), envir={"n": 2}, cache=tmp_cache)
    assert changed.set_index("hash")["changed"].to_dict() == {
        "command": False,
        "depend": True,
        "file": False,
        "seed": False,
    }


def test_deps_profile_of_unbuilt_target(tmp_cache):
    profile = deps_profile("c", _plan(), envir={"n": 1}, cache=tmp_cache)
    assert profile["changed"].all()
    assert profile["old"].isna().all()


def test_dependency_graph_frames():
    g = dependency_graph(_plan(), envir={"n": 1})

    assert g.targets == ["a", "b", "c"]
    assert {"from": "a", "to": "b"} in g.edges_frame().to_dict("records")
    assert set(g.nodes_frame()["type"]) == {"target", "import"}


def test_predict_runtime_chain(tmp_cache):
    plan = make_plan(a="1", b="a + 1", c="b + 1")

    assert predict_runtime(plan, envir={}, cache=tmp_cache, default_time=2.0) == 6.0
    assert predict_runtime(plan, envir={}, cache=tmp_cache, default_time=2.0, jobs=4) == 6.0


def test_predict_runtime_parallel_stages(tmp_cache):
    plan = make_plan(a="1", b="2", c="a + b")

    assert predict_runtime(plan, envir={}, cache=tmp_cache, default_time=2.0) == 6.0
    assert predict_runtime(plan, envir={}, cache=tmp_cache, default_time=2.0, jobs=2) == 4.0


def test_predict_runtime_uses_recorded_times(tmp_cache):
    plan = make_plan(a="1", b="a + 1", c="b + 1")
    make(plan, envir={}, cache=tmp_cache)

    assert predict_runtime(plan, envir={}, cache=tmp_cache, default_time=2.0) == 0.0

    recorded = sum(tmp_cache.get_meta(t)["seconds"] for t in ("a", "b", "c"))
    scratch = predict_runtime(plan, envir={}, cache=tmp_cache, from_scratch=True, default_time=2.0)
    assert scratch == pytest.approx(recorded)


def test_predict_runtime_rejects_invalid_jobs(tmp_cache):
    with pytest.raises(ValueError):
        predict_runtime(_plan(), envir={"n": 1}, cache=tmp_cache, jobs=0)

# tests/core/engine/test_planner_order.py
"""
Testes de ordenação topológica e estágios do planner.

Os testes asseguram que:
- a ordem respeita dependências (inclusive as induzidas por arquivos)
- empates são resolvidos por ordem lexicográfica
- pedir um target inclui apenas ele e seus upstreams
- targets inexistentes são erro explícito

Invariantes:
    - Nenhum target aparece antes de suas dependências
    - A mesma entrada sempre produz a mesma ordem

Limites explícitos:
    - Não executa targets
    - Não decide staleness
"""

import pytest

from drakeflow.core.engine.planner import plan_execution, plan_stages
from drakeflow.core.exceptions import UnknownTargetError
from drakeflow.core.graph import build_graph
from drakeflow.core.plan import make_plan


def _graph(**targets):
    return build_graph(make_plan(**targets), {})


def test_toposort_linear():
    g = _graph(c="b + 1", b="a + 1", a="1")
    assert plan_execution(g) == ["a", "b", "c"]


def test_ties_are_broken_lexicographically():
    g = _graph(zeta="1", alpha="1", mid="zeta + alpha")
    assert plan_execution(g) == ["alpha", "zeta", "mid"]


def test_file_dependencies_order_targets():
    g = build_graph(
        make_plan(
            b_reader="read(file_in('x.txt'))",
            a_writer="write(file_out('x.txt'))",
        ),
        {},
    )
    assert plan_execution(g) == ["a_writer", "b_reader"]


def test_requested_targets_include_upstreams_only():
    g = _graph(a="1", b="a + 1", c="b + 1", other="2")

    assert plan_execution(g, ["b"]) == ["a", "b"]
    assert plan_execution(g, ["other"]) == ["other"]


def test_unknown_target_raises():
    g = _graph(a="1")
    with pytest.raises(UnknownTargetError):
        plan_execution(g, ["nope"])


def test_stages_group_independent_targets():
    g = _graph(a="1", b="2", c="a + b", d="a + 1", e="c + d")

    assert plan_stages(g) == [["a", "b"], ["c", "d"], ["e"]]
    assert plan_stages(g, ["d"]) == [["a"], ["d"]]


def test_graph_topological_sort_covers_all_nodes():
    g = _graph(a="1", b="a + f(1)")
    order = g.topological_sort()

    assert set(order) == {"a", "b", "f"}
    assert order.index("a") < order.index("b")
    assert order.index("f") < order.index("b")


def test_subgraph_keeps_upstream_only():
    g = _graph(a="1", b="a + 1", c="b + 1")
    sub = g.subgraph(["b"])

    assert sub.targets == ["a", "b"]
    assert "c" not in sub
    assert sub.parents("b") == {"a"}

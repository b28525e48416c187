"""
Planejador de execução de targets.

Produz, a partir do grafo de dependências, a ordem topológica
determinística dos targets selecionados e o agrupamento em estágios
paralelizáveis.

Decisões:
    - Ordenação topológica determinística (Kahn modificado)
    - Empates resolvidos por ordem lexicográfica do nome do target
    - Dependências entre targets incluem as induzidas por arquivos
      (file_out de um target lido por file_in de outro)

Invariantes:
    - Nenhum target aparece antes de suas dependências
    - Cada target selecionado aparece exatamente uma vez
    - A mesma entrada sempre produz a mesma ordem

Limites explícitos:
    - Não executa targets
    - Não decide staleness
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Set

from drakeflow.core.exceptions import CycleDetectedError
from drakeflow.core.graph.graph import DependencyGraph


def target_edges(graph: DependencyGraph, selected: Set[str]) -> Dict[str, Set[str]]:
    """Dependências (restritas a `selected`) de cada target selecionado."""
    return {t: graph.target_dependencies(t) & selected for t in selected}


def plan_execution(graph: DependencyGraph, targets: Optional[Iterable[str]] = None) -> List[str]:
    """
    Ordem topológica determinística dos targets a considerar.

    Args:
        graph: grafo construído por `build_graph`.
        targets: targets pedidos (None: todos). Os upstreams são incluídos.

    Returns:
        List[str]: nomes de targets em ordem de execução.

    Raises:
        UnknownTargetError: target pedido não existe no plano.
        CycleDetectedError: ciclo entre os targets selecionados.
    """
    selected = graph.required_targets(targets)
    deps = target_edges(graph, selected)

    incoming_count: Dict[str, int] = {t: len(d) for t, d in deps.items()}
    outgoing: Dict[str, Set[str]] = {t: set() for t in selected}
    for t, dlist in deps.items():
        for dep in dlist:
            outgoing[dep].add(t)

    ready: List[str] = sorted(t for t, c in incoming_count.items() if c == 0)
    order: List[str] = []

    while ready:
        current = ready.pop(0)  # menor lexicográfico
        order.append(current)
        for child in sorted(outgoing[current]):
            incoming_count[child] -= 1
            if incoming_count[child] == 0:
                ready.append(child)
                ready.sort()

    if len(order) != len(selected):
        remaining = sorted(selected - set(order))
        raise CycleDetectedError(
            message="Ciclo entre targets: " + ", ".join(remaining),
            details={"targets": remaining},
        )
    return order


def plan_stages(graph: DependencyGraph, targets: Optional[Iterable[str]] = None) -> List[List[str]]:
    """
    Agrupa os targets em estágios: cada estágio depende apenas de
    estágios anteriores, e targets de um mesmo estágio são independentes.
    """
    order = plan_execution(graph, targets)
    selected = set(order)
    deps = target_edges(graph, selected)

    level: Dict[str, int] = {}
    for t in order:
        level[t] = 1 + max((level[d] for d in deps[t]), default=-1)

    stages: List[List[str]] = [[] for _ in range(max(level.values(), default=-1) + 1)]
    for t in order:
        stages[level[t]].append(t)
    return stages

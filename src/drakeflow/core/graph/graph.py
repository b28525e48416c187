"""
Grafo de dependências (DAG) do drakeflow.

Nós:
    - target  → linha do plano
    - import  → objeto do ambiente usado por comandos ou funções
    - file    → arquivo declarado em file_in/file_out (nome `file:<path>`)
    - missing → nome usado em um comando que não é target, import nem builtin

Arestas apontam de upstream para downstream (dependência → dependente).

Invariantes:
    - O grafo é acíclico após `build_graph`
    - Ordenações são determinísticas (desempate lexicográfico)
    - Imports nunca dependem de targets
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Set

import pandas as pd

from drakeflow.core.exceptions import UnknownTargetError
from drakeflow.core.plan.triggers import Trigger


NODE_TARGET = "target"
NODE_IMPORT = "import"
NODE_FILE = "file"
NODE_MISSING = "missing"

FILE_PREFIX = "file:"


def file_node(path: str) -> str:
    return f"{FILE_PREFIX}{path}"


@dataclass
class Node:
    name: str
    kind: str
    fingerprint: Optional[str] = None
    path: Optional[str] = None


class DependencyGraph:
    """DAG de targets, imports e arquivos de um plano."""

    def __init__(self) -> None:
        self.nodes: Dict[str, Node] = {}
        self._children: Dict[str, Set[str]] = {}
        self._parents: Dict[str, Set[str]] = {}

        # metadados de targets (ordem do plano)
        self.targets: List[str] = []
        self.commands: Dict[str, str] = {}
        self.triggers: Dict[str, Optional[Trigger]] = {}
        self.seeds: Dict[str, Optional[int]] = {}
        self.file_out: Dict[str, List[str]] = {}
        self.value_deps: Dict[str, Set[str]] = {}

        # objeto resolvido para cada nó import (ambiente ou globals da função)
        self.import_values: Dict[str, Any] = {}

        self.warnings: List[str] = []

    # -----------------------------
    # Construção
    # -----------------------------
    def add_node(self, name: str, kind: str, *, path: Optional[str] = None) -> Node:
        node = self.nodes.get(name)
        if node is None:
            node = Node(name=name, kind=kind, path=path)
            self.nodes[name] = node
            self._children[name] = set()
            self._parents[name] = set()
        return node

    def add_target(self, name: str, *, command: str, trigger: Optional[Trigger], seed: Optional[int]) -> None:
        self.add_node(name, NODE_TARGET)
        self.targets.append(name)
        self.commands[name] = command
        self.triggers[name] = trigger
        self.seeds[name] = seed
        self.file_out[name] = []
        self.value_deps[name] = set()

    def add_edge(self, parent: str, child: str) -> None:
        self._children[parent].add(child)
        self._parents[child].add(parent)

    # -----------------------------
    # Consultas básicas
    # -----------------------------
    def __contains__(self, name: object) -> bool:
        return name in self.nodes

    def kind(self, name: str) -> str:
        return self.nodes[name].kind

    def parents(self, name: str) -> Set[str]:
        return set(self._parents[name])

    def children(self, name: str) -> Set[str]:
        return set(self._children[name])

    def nodes_of_kind(self, kind: str) -> List[str]:
        return sorted(n for n, node in self.nodes.items() if node.kind == kind)

    @property
    def imports(self) -> List[str]:
        return self.nodes_of_kind(NODE_IMPORT)

    @property
    def files(self) -> List[str]:
        return [self.nodes[n].path for n in self.nodes_of_kind(NODE_FILE)]

    @property
    def missing(self) -> List[str]:
        return self.nodes_of_kind(NODE_MISSING)

    def require_target(self, name: str) -> None:
        if name not in self.nodes or self.kind(name) != NODE_TARGET:
            raise UnknownTargetError(
                message=f"Target inexistente no plano: {name}",
                details={"target": name},
            )

    def _walk(self, start: Iterable[str], step, *, through: Optional[Set[str]] = None) -> Set[str]:
        seen: Set[str] = set()
        stack = list(start)
        while stack:
            current = stack.pop()
            for nxt in step(current):
                if nxt in seen:
                    continue
                seen.add(nxt)
                if through is None or self.kind(nxt) in through:
                    stack.append(nxt)
        return seen

    def upstream(self, name: str, *, recursive: bool = True) -> Set[str]:
        if not recursive:
            return self.parents(name)
        return self._walk([name], lambda n: self._parents[n])

    def downstream(self, name: str, *, recursive: bool = True) -> Set[str]:
        if not recursive:
            return self.children(name)
        return self._walk([name], lambda n: self._children[n])

    # -----------------------------
    # Consultas de targets
    # -----------------------------
    def target_dependencies(self, target: str) -> Set[str]:
        """Targets que precisam ser construídos antes de `target`.

        Inclui produtores de arquivos lidos pelo target (ou pelas funções
        que ele usa); a busca não atravessa outros targets.
        """
        reached = self._walk([target], lambda n: self._parents[n], through={NODE_IMPORT, NODE_FILE, NODE_MISSING})
        return {n for n in reached if self.kind(n) == NODE_TARGET}

    def input_files(self, target: str) -> List[str]:
        """Arquivos lidos pelo target ou pelas funções importadas que ele usa."""
        reached = self._walk([target], lambda n: self._parents[n], through={NODE_IMPORT})
        return sorted(self.nodes[n].path for n in reached if self.kind(n) == NODE_FILE)

    def dependency_nodes(self, target: str) -> List[str]:
        """Dependências diretas (targets, imports, missing) que entram no fingerprint."""
        return sorted(p for p in self._parents[target] if self.kind(p) != NODE_FILE)

    def value_dependencies(self, target: str) -> Set[str]:
        """Targets cujos valores o comando (ou o trigger) lê pelo nome."""
        self.require_target(target)
        return set(self.value_deps[target])

    def required_targets(self, targets: Optional[Iterable[str]] = None) -> Set[str]:
        """Targets pedidos mais todos os targets upstream deles."""
        if targets is None:
            return set(self.targets)
        wanted = list(targets)
        for name in wanted:
            self.require_target(name)
        out = set(wanted)
        stack = list(wanted)
        while stack:
            current = stack.pop()
            for dep in self.target_dependencies(current):
                if dep not in out:
                    out.add(dep)
                    stack.append(dep)
        return out

    def subgraph(self, targets: Iterable[str]) -> "DependencyGraph":
        """Grafo restrito a `targets` e a todos os nós upstream deles."""
        keep: Set[str] = set()
        for name in targets:
            self.require_target(name)
            keep.add(name)
            keep |= self.upstream(name)
        sub = DependencyGraph()
        for name in sorted(keep):
            node = self.nodes[name]
            sub.add_node(name, node.kind, path=node.path).fingerprint = node.fingerprint
            if name in self.import_values:
                sub.import_values[name] = self.import_values[name]
        for name in self.targets:
            if name in keep:
                sub.targets.append(name)
                sub.commands[name] = self.commands[name]
                sub.triggers[name] = self.triggers[name]
                sub.seeds[name] = self.seeds[name]
                sub.file_out[name] = list(self.file_out[name])
                sub.value_deps[name] = set(self.value_deps[name])
        for name in keep:
            for child in self._children[name] & keep:
                sub.add_edge(name, child)
        sub.warnings = list(self.warnings)
        return sub

    # -----------------------------
    # Ordenação e ciclos
    # -----------------------------
    def topological_sort(self, names: Optional[Iterable[str]] = None) -> List[str]:
        """Kahn determinístico sobre o subconjunto `names` (default: todos os nós)."""
        subset = set(self.nodes) if names is None else set(names)
        incoming = {n: len(self._parents[n] & subset) for n in subset}
        ready = sorted(n for n, c in incoming.items() if c == 0)
        order: List[str] = []
        while ready:
            current = ready.pop(0)
            order.append(current)
            for child in sorted(self._children[current] & subset):
                incoming[child] -= 1
                if incoming[child] == 0:
                    ready.append(child)
                    ready.sort()
        return order

    def find_cycle(self) -> Optional[List[str]]:
        """Retorna um ciclo (lista de nós, fechando no primeiro) ou None."""
        WHITE, GRAY, BLACK = 0, 1, 2
        color = {n: WHITE for n in self.nodes}
        for root in sorted(self.nodes):
            if color[root] != WHITE:
                continue
            path: List[str] = [root]
            iters = [iter(sorted(self._children[root]))]
            color[root] = GRAY
            while iters:
                child = next(iters[-1], None)
                if child is None:
                    color[path.pop()] = BLACK
                    iters.pop()
                    continue
                if color[child] == GRAY:
                    return path[path.index(child):] + [child]
                if color[child] == WHITE:
                    color[child] = GRAY
                    path.append(child)
                    iters.append(iter(sorted(self._children[child])))
        return None

    # -----------------------------
    # Tabelas
    # -----------------------------
    def _display(self, name: str) -> str:
        node = self.nodes[name]
        return node.path if node.kind == NODE_FILE else name

    def deps_target(self, target: str) -> pd.DataFrame:
        """Dependências diretas de um target: (name, type)."""
        self.require_target(target)
        rows = [{"name": self._display(p), "type": self.kind(p)} for p in sorted(self._parents[target])]
        rows += [{"name": path, "type": "file_out"} for path in sorted(self.file_out[target])]
        return pd.DataFrame(rows, columns=["name", "type"])

    def edges_frame(self) -> pd.DataFrame:
        rows = [
            {"from": self._display(parent), "to": self._display(child)}
            for parent in sorted(self._children)
            for child in sorted(self._children[parent])
        ]
        return pd.DataFrame(rows, columns=["from", "to"])

    def nodes_frame(self) -> pd.DataFrame:
        rows = [
            {"name": self._display(n), "type": node.kind, "fingerprint": node.fingerprint}
            for n, node in sorted(self.nodes.items())
        ]
        return pd.DataFrame(rows, columns=["name", "type", "fingerprint"])

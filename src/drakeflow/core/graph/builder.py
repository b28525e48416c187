"""
Construção do grafo de dependências a partir de um plano e de um ambiente.

Resolução de cada nome global encontrado em comandos (e em códigos de
trigger):

    1. nome de target do plano        → aresta target → target
    2. marcador (file_in, ignore, ...) → ignorado
    3. nome presente no ambiente       → nó import (funções analisadas
                                         recursivamente)
    4. nome já resolvido como import   → nó import (helper do mesmo
                                         módulo de uma função importada)
    5. caso contrário                  → nó missing

Os imports do ambiente são resolvidos para todas as linhas antes dos
passos 4 e 5.

Funções do usuário são analisadas recursivamente: os nomes que elas usam
são resolvidos no ambiente e, em seguida, nos globals do módulo onde a
função foi definida (apenas funções do mesmo módulo). Funções de
bibliotecas instaladas e da stdlib são tratadas como opacas.

Fingerprint de imports (calculado em ordem topológica):
    - função do usuário → código normalizado + fingerprints dos imports usados
    - módulo            → nome + __version__
    - classe/callable   → nome qualificado
    - outros valores    → hash do valor (joblib)
"""

from __future__ import annotations

import inspect
import sys
import sysconfig
import types
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Set, Tuple

import pandas as pd

from drakeflow.core.analysis.code import analyze_code
from drakeflow.core.analysis.markers import MARKERS
from drakeflow.core.exceptions import CycleDetectedError, FileOutputConflictError
from drakeflow.core.hashing.fingerprint import digest, hash_code, hash_value
from drakeflow.core.plan.plan import iter_targets, validate_plan

from .graph import NODE_FILE, NODE_IMPORT, NODE_MISSING, DependencyGraph, file_node


_LIBRARY_ROOTS = tuple(
    str(Path(p).resolve())
    for key in ("stdlib", "platstdlib", "purelib", "platlib")
    for p in [sysconfig.get_paths().get(key)]
    if p
)


def is_user_function(value: Any) -> bool:
    """Funções Python definidas fora da stdlib e de pacotes instalados."""
    if not inspect.isfunction(value):
        return False
    module = sys.modules.get(getattr(value, "__module__", None) or "")
    filename = getattr(module, "__file__", None) if module is not None else None
    if filename is None:
        return True
    resolved = str(Path(filename).resolve())
    if "site-packages" in resolved or "dist-packages" in resolved:
        return False
    return not resolved.startswith(_LIBRARY_ROOTS)


def _resolve_in_function(name: str, func: Any) -> Tuple[Any, bool]:
    scope = getattr(func, "__globals__", {})
    if name not in scope:
        return None, False
    value = scope[name]
    if is_user_function(value) and getattr(value, "__module__", None) == getattr(func, "__module__", None):
        return value, True
    return None, False


def import_fingerprint(value: Any, dependency_fingerprints: Dict[str, Optional[str]]) -> str:
    """Fingerprint de um objeto do ambiente."""
    if is_user_function(value):
        parts = [hash_code(value)]
        parts += [f"{n}={fp}" for n, fp in sorted(dependency_fingerprints.items())]
        return digest(*parts)
    if isinstance(value, types.ModuleType):
        return digest("module", value.__name__, getattr(value, "__version__", ""))
    if inspect.isclass(value) or callable(value):
        module = getattr(value, "__module__", "") or ""
        qualname = getattr(value, "__qualname__", None) or getattr(value, "__name__", None) or type(value).__name__
        return digest("callable", module, qualname)
    return hash_value(value)


class _Builder:
    def __init__(self, plan: pd.DataFrame, envir: Mapping[str, Any]) -> None:
        self.plan = validate_plan(plan)
        self.envir = envir
        self.graph = DependencyGraph()
        self._producers: Dict[str, str] = {}
        self._visiting: Set[str] = set()

    def build(self) -> DependencyGraph:
        g = self.graph
        rows = list(iter_targets(self.plan))
        for row in rows:
            g.add_target(row.target, command=row.command, trigger=row.trigger, seed=row.seed)
        target_names = set(g.targets)

        analyzed = []
        for row in rows:
            deps = analyze_code(row.command)
            if row.trigger is not None:
                for code in row.trigger.codes():
                    deps.update(analyze_code(code))
            g.warnings.extend(f"{row.target}: {w}" for w in deps.warnings)
            analyzed.append((row, deps))

        # imports do ambiente antes dos nomes soltos: a resolução não depende da ordem do plano
        for row, deps in analyzed:
            for name in sorted(deps.globals):
                if name not in target_names and name not in MARKERS and name in self.envir:
                    self._add_import(name, self.envir[name])

        for row, deps in analyzed:
            for name in sorted(deps.globals):
                if name in target_names:
                    if name in self.envir:
                        g.warnings.append(
                            f"{row.target}: '{name}' é target e objeto do ambiente; o target tem precedência"
                        )
                    g.add_edge(name, row.target)
                    g.value_deps[row.target].add(name)
                elif name in MARKERS:
                    continue
                elif name in g and g.kind(name) == NODE_IMPORT:
                    # do ambiente ou de uma função do mesmo módulo
                    g.add_edge(name, row.target)
                else:
                    g.add_node(name, NODE_MISSING)
                    g.add_edge(name, row.target)

            for path in sorted(deps.file_in):
                node = file_node(path)
                g.add_node(node, NODE_FILE, path=path)
                g.add_edge(node, row.target)

            for path in sorted(deps.file_out):
                owner = self._producers.get(path)
                if owner is not None and owner != row.target:
                    raise FileOutputConflictError(
                        message=f"Arquivo '{path}' declarado em file_out por '{owner}' e '{row.target}'",
                        details={"path": path, "targets": [owner, row.target]},
                    )
                self._producers[path] = row.target
                node = file_node(path)
                g.add_node(node, NODE_FILE, path=path)
                g.add_edge(row.target, node)
                g.file_out[row.target].append(path)

        cycle = g.find_cycle()
        if cycle is not None:
            raise CycleDetectedError(
                message="Ciclo no grafo de dependências: " + " -> ".join(cycle),
                details={"cycle": cycle},
                hint="Targets não podem depender (direta ou indiretamente) de si mesmos.",
            )

        self._fingerprint_imports()
        return g

    def _add_import(self, name: str, value: Any) -> None:
        g = self.graph
        if name in g:
            return
        g.add_node(name, NODE_IMPORT)
        g.import_values[name] = value
        if not is_user_function(value):
            return
        self._visiting.add(name)

        deps = analyze_code(value)
        g.warnings.extend(f"{name}: {w}" for w in deps.warnings)
        for dep in sorted(deps.globals):
            if dep == name or dep in MARKERS:
                continue
            if dep in self.envir:
                dep_value, found = self.envir[dep], True
            else:
                dep_value, found = _resolve_in_function(dep, value)
            if not found:
                continue
            if dep in self._visiting or (dep in g and g.kind(dep) != NODE_IMPORT):
                # recursão mútua: a aresta fecharia um ciclo entre imports
                continue
            self._add_import(dep, dep_value)
            g.add_edge(dep, name)

        for path in sorted(deps.file_in):
            node = file_node(path)
            g.add_node(node, NODE_FILE, path=path)
            g.add_edge(node, name)
        for path in sorted(deps.file_out):
            g.warnings.append(f"{name}: file_out('{path}') dentro de funções é ignorado; declare-o no comando")
        self._visiting.discard(name)

    def _fingerprint_imports(self) -> None:
        g = self.graph
        imports: Set[str] = set(g.imports)
        for name in g.topological_sort(imports):
            deps = {p: g.nodes[p].fingerprint for p in g.parents(name) if p in imports}
            g.nodes[name].fingerprint = import_fingerprint(g.import_values[name], deps)


def build_graph(plan: pd.DataFrame, envir: Optional[Mapping[str, Any]] = None) -> DependencyGraph:
    """
    Constrói o grafo de dependências de um plano.

    Args:
        plan: plano (validado aqui).
        envir: mapeamento nome → objeto usado para resolver funções e
            valores referenciados pelos comandos.

    Returns:
        DependencyGraph: grafo acíclico com fingerprints de imports.

    Raises:
        PlanValidationError: plano inválido.
        FileOutputConflictError: mesmo arquivo em file_out de dois targets.
        CycleDetectedError: dependências circulares.
        HashingError: objeto do ambiente sem fingerprint possível.
    """
    return _Builder(plan, envir or {}).build()

"""
Transformações de plano (static branching).

Um target declarado com `transform=` é expandido em vários targets antes
da construção do grafo:

    make_plan(
        data=target("simulate(n)", transform=map_(n=[10, 100])),
        fit=target("fit_model(data)", transform=map_("data")),
        best=target("pick(fit)", transform=combine("fit")),
    )

expande para:

    data_10   simulate(10)
    data_100  simulate(100)
    fit_data_10   fit_model(data_10)
    fit_data_100  fit_model(data_100)
    best      pick([fit_data_10, fit_data_100])

Regras:
    - map_: linhas paralelas; colunas do grid e upstreams com mesmo tamanho
    - cross: produto cartesiano de upstreams e colunas do grid
    - combine: substitui o nome do upstream pela lista de suas expansões;
      com `by=`, um target por valor distinto da variável do grid
    - Nomes expandidos: `<nome>_<rótulos>` saneados para identificadores
    - Expansões herdam o grid dos upstreams (variáveis continuam disponíveis
      para transformações seguintes)
"""

from __future__ import annotations

import ast
import itertools
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pandas as pd

from drakeflow.core.analysis.code import parse_code
from drakeflow.core.exceptions import TransformError


@dataclass(frozen=True)
class Symbol:
    """Referência a um target dentro de um grid (substituída como nome)."""

    name: str


@dataclass(frozen=True)
class Map:
    upstream: Tuple[str, ...] = ()
    grid: Tuple[Tuple[str, Tuple[Any, ...]], ...] = ()


@dataclass(frozen=True)
class Cross:
    upstream: Tuple[str, ...] = ()
    grid: Tuple[Tuple[str, Tuple[Any, ...]], ...] = ()


@dataclass(frozen=True)
class Combine:
    targets: Tuple[str, ...] = ()
    by: Optional[str] = None


def _grid(values: Dict[str, Sequence[Any]]) -> Tuple[Tuple[str, Tuple[Any, ...]], ...]:
    out = []
    for name, seq in values.items():
        if isinstance(seq, (str, bytes)) or not hasattr(seq, "__iter__"):
            raise TransformError(
                message=f"Valores do grid '{name}' devem ser uma sequência",
                details={"variable": name, "type": type(seq).__name__},
            )
        out.append((name, tuple(seq)))
    return tuple(out)


def map_(*upstream: str, **grid: Sequence[Any]) -> Map:
    """Uma expansão por linha do grid (ou por expansão dos upstreams)."""
    return Map(upstream=tuple(upstream), grid=_grid(grid))


def cross(*upstream: str, **grid: Sequence[Any]) -> Cross:
    """Uma expansão por combinação (produto cartesiano)."""
    return Cross(upstream=tuple(upstream), grid=_grid(grid))


def combine(*targets: str, by: Optional[str] = None) -> Combine:
    """Agrega as expansões de `targets` em listas."""
    if not targets:
        raise TransformError(message="combine() requer ao menos um target", details={})
    return Combine(targets=tuple(targets), by=by)


# -----------------------------
# Expansão
# -----------------------------

@dataclass
class _Expansion:
    name: str
    grid: Dict[str, Any] = field(default_factory=dict)


def _is_missing(value: Any) -> bool:
    return isinstance(value, float) and value != value


def _label(value: Any) -> str:
    if isinstance(value, Symbol):
        text = value.name
    elif isinstance(value, str):
        text = value
    else:
        text = repr(value)
    return re.sub(r"\W+", "_", text).strip("_")


def _expanded_name(base: str, labels: List[str]) -> str:
    parts = [base] + [label for label in labels if label]
    return "_".join(parts)


def _make_unique(names: List[str]) -> List[str]:
    """Desambigua nomes repetidos com `_2`, `_3`, ...; a primeira ocorrência fica intacta."""
    used = set(names)
    counts: Dict[str, int] = {}
    out: List[str] = []
    for name in names:
        if name not in counts:
            counts[name] = 1
            out.append(name)
            continue
        k = counts[name]
        candidate = name
        while candidate in used:
            k += 1
            candidate = f"{name}_{k}"
        counts[name] = k
        used.add(candidate)
        out.append(candidate)
    return out


def _as_node(value: Any) -> ast.expr:
    if isinstance(value, Symbol):
        return ast.Name(id=value.name, ctx=ast.Load())
    if isinstance(value, list) and all(isinstance(v, Symbol) for v in value):
        return ast.List(elts=[ast.Name(id=v.name, ctx=ast.Load()) for v in value], ctx=ast.Load())
    try:
        return ast.parse(repr(value), mode="eval").body
    except SyntaxError as e:
        raise TransformError(
            message=f"Valor do grid não pode ser escrito como código: {value!r}",
            details={"type": type(value).__name__},
            hint="Use literais Python (números, strings, tuplas, listas, dicts).",
        ) from e


class _Substitute(ast.NodeTransformer):
    def __init__(self, mapping: Dict[str, Any]) -> None:
        self.mapping = mapping

    def visit_Name(self, node: ast.Name) -> Any:
        if isinstance(node.ctx, ast.Load) and node.id in self.mapping:
            return ast.copy_location(_as_node(self.mapping[node.id]), node)
        return node


def substitute(command: str, mapping: Dict[str, Any]) -> str:
    """Reescreve `command` trocando nomes pelos valores de `mapping`."""
    if not mapping:
        return command
    tree = _Substitute(mapping).visit(parse_code(command))
    ast.fix_missing_locations(tree)
    return ast.unparse(tree)


class _Expander:
    def __init__(self, frame: pd.DataFrame) -> None:
        self.rows: Dict[str, Dict[str, Any]] = {}
        self.order: List[str] = []
        for row in frame.to_dict(orient="records"):
            name = row["target"]
            if name in self.rows:
                raise TransformError(message=f"Target duplicado antes da expansão: {name}", details={"target": name})
            self.rows[name] = row
            self.order.append(name)
        self.expansions: Dict[str, List[_Expansion]] = {}
        self.output: Dict[str, List[Dict[str, Any]]] = {}
        self._in_progress: List[str] = []

    def run(self) -> List[Dict[str, Any]]:
        for name in self.order:
            self._expand(name)
        out: List[Dict[str, Any]] = []
        for name in self.order:
            out.extend(self.output[name])
        return out

    def _upstream(self, name: str, owner: str) -> List[_Expansion]:
        if name not in self.rows:
            raise TransformError(
                message=f"Transformação de '{owner}' referencia target inexistente '{name}'",
                details={"target": owner, "upstream": name},
            )
        return self._expand(name)

    def _expand(self, name: str) -> List[_Expansion]:
        if name in self.expansions:
            return self.expansions[name]
        if name in self._in_progress:
            raise TransformError(
                message=f"Transformações circulares envolvendo '{name}'",
                details={"chain": self._in_progress + [name]},
            )
        self._in_progress.append(name)

        row = self.rows[name]
        transform = row.get("transform")

        if transform is None or _is_missing(transform):
            combos = [(_Expansion(name), {})]
        elif isinstance(transform, Map):
            combos = self._map(name, transform)
        elif isinstance(transform, Cross):
            combos = self._cross(name, transform)
        elif isinstance(transform, Combine):
            combos = self._combine(name, transform)
        else:
            raise TransformError(
                message=f"Transformação desconhecida em '{name}': {type(transform).__name__}",
                details={"target": name},
            )

        # rótulos sanitizados podem coincidir (ex.: 1 e -1 viram "1")
        for (expansion, _), unique in zip(combos, _make_unique([e.name for e, _ in combos])):
            expansion.name = unique

        produced: List[Dict[str, Any]] = []
        for expansion, mapping in combos:
            new_row = dict(row)
            new_row["target"] = expansion.name
            new_row["command"] = substitute(row["command"], mapping)
            new_row["transform"] = None
            produced.append(new_row)

        self._in_progress.pop()
        self.expansions[name] = [e for e, _ in combos]
        self.output[name] = produced
        return self.expansions[name]

    def _map(self, name: str, t: Map) -> List[Tuple[_Expansion, Dict[str, Any]]]:
        ups = [(u, self._upstream(u, name)) for u in t.upstream]
        lengths = {len(values) for _, values in t.grid} | {len(exps) for _, exps in ups}
        if len(lengths) > 1:
            raise TransformError(
                message=f"map_() de '{name}' requer grids e upstreams de mesmo tamanho",
                details={"target": name, "lengths": sorted(lengths)},
            )
        n = lengths.pop() if lengths else 0

        combos = []
        for i in range(n):
            grid: Dict[str, Any] = {}
            mapping: Dict[str, Any] = {}
            labels: List[str] = []
            for u, exps in ups:
                grid.update(exps[i].grid)
                grid[u] = Symbol(exps[i].name)
                labels.append(exps[i].name)
            for var, values in t.grid:
                grid[var] = values[i]
                labels.append(_label(values[i]))
            mapping.update(grid)
            combos.append((_Expansion(_expanded_name(name, labels), grid), mapping))
        return combos

    def _cross(self, name: str, t: Cross) -> List[Tuple[_Expansion, Dict[str, Any]]]:
        dims: List[List[Tuple[Dict[str, Any], str]]] = []
        for u in t.upstream:
            dims.append([({**e.grid, u: Symbol(e.name)}, e.name) for e in self._upstream(u, name)])
        for var, values in t.grid:
            dims.append([({var: v}, _label(v)) for v in values])

        combos = []
        for parts in itertools.product(*dims) if dims else []:
            grid: Dict[str, Any] = {}
            labels: List[str] = []
            for g, label in parts:
                grid.update(g)
                labels.append(label)
            combos.append((_Expansion(_expanded_name(name, labels), grid), dict(grid)))
        return combos

    def _combine(self, name: str, t: Combine) -> List[Tuple[_Expansion, Dict[str, Any]]]:
        ups = [(u, self._upstream(u, name)) for u in t.targets]

        if t.by is None:
            mapping = {u: [Symbol(e.name) for e in exps] for u, exps in ups}
            return [(_Expansion(name), mapping)]

        groups: Dict[str, Tuple[Any, Dict[str, List[Symbol]]]] = {}
        for u, exps in ups:
            for e in exps:
                if t.by not in e.grid:
                    raise TransformError(
                        message=f"combine(by='{t.by}') de '{name}': '{e.name}' não possui a variável",
                        details={"target": name, "by": t.by, "expansion": e.name},
                    )
                value = e.grid[t.by]
                key = repr(value)
                groups.setdefault(key, (value, {uu: [] for uu, _ in ups}))[1][u].append(Symbol(e.name))

        combos = []
        for value, members in groups.values():
            mapping: Dict[str, Any] = dict(members)
            combos.append((_Expansion(_expanded_name(name, [_label(value)]), {t.by: value}), mapping))
        return combos


def expand_plan(plan: pd.DataFrame) -> pd.DataFrame:
    """
    Expande as transformações declaradas na coluna `transform`.

    Planos sem a coluna `transform` são retornados sem alteração (cópia).

    Raises:
        TransformError: upstream inexistente, grids de tamanhos diferentes,
            variável de `by` ausente ou valores não representáveis.
    """
    if "transform" not in plan.columns:
        return plan.copy()

    rows = _Expander(plan).run()
    frame = pd.DataFrame(rows, columns=list(plan.columns), dtype=object)
    return frame.drop(columns=["transform"]).reset_index(drop=True)

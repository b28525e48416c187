"""
Plano de workflow — modelo tabular de targets e comandos.

Um plano é um `pandas.DataFrame` com uma linha por target:

    target   nome do target (identificador Python)
    command  código Python que produz o valor do target
    trigger  Trigger opcional (None → defaults da configuração)
    seed     seed opcional (None → derivada da seed global)

Colunas adicionais fornecidas pelo usuário são preservadas.

Comandos referenciam outros targets e funções do ambiente pelo nome:

    plan = make_plan(
        raw=target("pd.read_csv(file_in('data/raw.csv'))"),
        data=target("clean(raw)"),
        model=target("fit(data)", seed=42),
    )

Invariantes:
    - Nomes de targets são únicos e identificadores válidos
    - Comandos são código Python sintaticamente válido
    - A ordem das linhas é a ordem de declaração
"""

from __future__ import annotations

import keyword
from collections import Counter
from dataclasses import dataclass
from typing import Any, Iterator, List, NamedTuple, Optional, Union

import pandas as pd

from drakeflow.core.analysis.code import parse_code
from drakeflow.core.exceptions import (
    AnalysisError,
    CommandSyntaxError,
    DuplicateTargetError,
    InvalidTargetNameError,
    PlanValidationError,
)

from .transforms import Combine, Cross, Map, expand_plan
from .triggers import Trigger


PLAN_COLUMNS = ["target", "command", "trigger", "seed"]

Transform = Union[Map, Cross, Combine]


@dataclass(frozen=True)
class TargetSpec:
    """Declaração de um target dentro de `make_plan`."""

    command: str
    trigger: Optional[Trigger] = None
    seed: Optional[int] = None
    transform: Optional[Transform] = None


class PlanRow(NamedTuple):
    target: str
    command: str
    trigger: Optional[Trigger]
    seed: Optional[int]


def target(
    command: str,
    *,
    trigger: Optional[Trigger] = None,
    seed: Optional[int] = None,
    transform: Optional[Transform] = None,
) -> TargetSpec:
    """Declara um target com trigger, seed ou transformação próprios."""
    return TargetSpec(command=command, trigger=trigger, seed=seed, transform=transform)


def make_plan(*, transform: bool = True, **targets: Union[str, TargetSpec]) -> pd.DataFrame:
    """
    Cria um plano de workflow a partir de argumentos nomeados.

    Args:
        transform: expande `map_`/`cross`/`combine` quando verdadeiro.
        **targets: nome do target → comando (str) ou `TargetSpec`.

    Returns:
        pd.DataFrame: plano validado.

    Raises:
        PlanValidationError: valores que não são comando nem TargetSpec,
            ou qualquer erro de `validate_plan`.
    """
    rows = []
    for name, spec in targets.items():
        if isinstance(spec, str):
            spec = TargetSpec(command=spec)
        if not isinstance(spec, TargetSpec):
            raise PlanValidationError(
                message=f"Target '{name}' deve ser um comando (str) ou target(...)",
                details={"target": name, "type": type(spec).__name__},
            )
        rows.append(
            {
                "target": name,
                "command": spec.command,
                "trigger": spec.trigger,
                "seed": spec.seed,
                "transform": spec.transform,
            }
        )

    frame = pd.DataFrame(rows, columns=PLAN_COLUMNS + ["transform"], dtype=object)
    if transform:
        frame = expand_plan(frame)
    return validate_plan(frame)


def _optional_seed(name: str, value: Any) -> Optional[int]:
    if value is None or (isinstance(value, float) and value != value):
        return None
    try:
        seed = int(value)
    except (TypeError, ValueError) as e:
        raise PlanValidationError(
            message=f"Seed inválida para o target '{name}': {value!r}",
            details={"target": name, "seed": repr(value)},
        ) from e
    if seed != value:
        raise PlanValidationError(
            message=f"Seed do target '{name}' deve ser inteira: {value!r}",
            details={"target": name, "seed": repr(value)},
        )
    return seed


def _optional_trigger(name: str, value: Any) -> Optional[Trigger]:
    if value is None or (isinstance(value, float) and value != value):
        return None
    if not isinstance(value, Trigger):
        raise PlanValidationError(
            message=f"Trigger inválido para o target '{name}'",
            details={"target": name, "type": type(value).__name__},
            hint="Use trigger(...) para construir triggers.",
        )
    return value


def validate_plan(plan: pd.DataFrame) -> pd.DataFrame:
    """
    Valida a estrutura de um plano e retorna uma cópia normalizada.

    Raises:
        PlanValidationError: objeto não é DataFrame, colunas ausentes,
            comando vazio, seed/trigger inválidos.
        InvalidTargetNameError: nome não é identificador Python válido.
        DuplicateTargetError: nomes repetidos.
        CommandSyntaxError: comando não faz parse.
    """
    if not isinstance(plan, pd.DataFrame):
        raise PlanValidationError(
            message=f"Plano deve ser um pandas.DataFrame, recebido: {type(plan).__name__}",
            details={"type": type(plan).__name__},
        )

    missing = [c for c in ("target", "command") if c not in plan.columns]
    if missing:
        raise PlanValidationError(
            message=f"Plano sem colunas obrigatórias: {missing}",
            details={"missing_columns": missing},
        )

    frame = plan.copy()
    for col in ("trigger", "seed"):
        if col not in frame.columns:
            frame[col] = None
    frame["trigger"] = frame["trigger"].astype(object)
    frame["seed"] = frame["seed"].astype(object)

    names = list(frame["target"])
    for name in names:
        if not isinstance(name, str) or not name.isidentifier() or keyword.iskeyword(name):
            raise InvalidTargetNameError(
                message=f"Nome de target inválido: {name!r}",
                details={"target": repr(name)},
                hint="Targets são referenciados pelo nome nos comandos: use identificadores Python.",
            )

    duplicated = sorted(n for n, count in Counter(names).items() if count > 1)
    if duplicated:
        raise DuplicateTargetError(
            message=f"Targets duplicados: {duplicated}",
            details={"targets": duplicated},
        )

    triggers: List[Optional[Trigger]] = []
    seeds: List[Optional[int]] = []
    for name, command, trig, seed in zip(names, frame["command"], frame["trigger"], frame["seed"]):
        if not isinstance(command, str) or not command.strip():
            raise PlanValidationError(
                message=f"Comando vazio para o target '{name}'",
                details={"target": name},
            )
        try:
            parse_code(command)
        except AnalysisError as e:
            raise CommandSyntaxError(
                message=f"Comando inválido no target '{name}': {e.message}",
                details={"target": name, **e.details},
            ) from e
        triggers.append(_optional_trigger(name, trig))
        seeds.append(_optional_seed(name, seed))

    frame["trigger"] = pd.Series(triggers, index=frame.index, dtype=object)
    frame["seed"] = pd.Series(seeds, index=frame.index, dtype=object)

    ordered = PLAN_COLUMNS + [c for c in frame.columns if c not in PLAN_COLUMNS]
    return frame[ordered].reset_index(drop=True)


def bind_plans(*plans: pd.DataFrame) -> pd.DataFrame:
    """Concatena planos (linha a linha) e valida o resultado."""
    if not plans:
        return validate_plan(pd.DataFrame(columns=PLAN_COLUMNS, dtype=object))
    frames = [validate_plan(p) for p in plans]
    return validate_plan(pd.concat(frames, ignore_index=True))


def iter_targets(plan: pd.DataFrame) -> Iterator[PlanRow]:
    """Itera as linhas de um plano já validado."""
    for name, command, trig, seed in zip(plan["target"], plan["command"], plan["trigger"], plan["seed"]):
        yield PlanRow(target=name, command=command, trigger=trig, seed=seed)

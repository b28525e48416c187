"""
Execução de um target isolado (lado do worker).

`build_target(task)` é uma função de módulo (picklable) executada pelos
backends, no mesmo processo, em threads ou em processos filhos.

Passos:
    1. semeia `random` e `numpy.random` com a seed do target
       (o estado anterior dos geradores é restaurado ao final)
    2. avalia o comando no namespace (ambiente + valores das dependências
       + marcadores), capturando warnings
    3. repete em caso de erro até `retries` tentativas extras
    4. retorna um BuildOutcome; exceções nunca escapam

Backends que compartilham o processo entre threads usam
`build_target_exclusive`, que serializa os passos 1 a 3.

Módulos não são picklable: o namespace os carrega como `ModuleRef`, que o
worker resolve com `importlib` antes de avaliar o comando.
"""

from __future__ import annotations

import ast
import importlib
import random
import threading
import time
import traceback
import types
import warnings
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import numpy as np

from drakeflow.core.analysis.code import parse_code
from drakeflow.core.analysis.markers import MARKERS


@dataclass(frozen=True)
class ModuleRef:
    name: str


@dataclass
class BuildTask:
    target: str
    command: str
    namespace: Dict[str, Any]
    seed: int
    retries: int = 0


@dataclass
class ErrorRecord:
    exc_type: str
    exc_message: str
    traceback: str


@dataclass
class BuildOutcome:
    target: str
    ok: bool
    value: Any = None
    seconds: float = 0.0
    attempts: int = 0
    started_at: str = ""
    finished_at: str = ""
    warnings: List[str] = field(default_factory=list)
    error: Optional[ErrorRecord] = None


def pack_namespace(namespace: Dict[str, Any]) -> Dict[str, Any]:
    """Troca módulos por `ModuleRef` para transporte entre processos."""
    return {k: ModuleRef(v.__name__) if isinstance(v, types.ModuleType) else v for k, v in namespace.items()}


def unpack_namespace(namespace: Dict[str, Any]) -> Dict[str, Any]:
    return {k: importlib.import_module(v.name) if isinstance(v, ModuleRef) else v for k, v in namespace.items()}


def evaluate_code(code: str, namespace: Dict[str, Any], *, filename: str = "<drakeflow>") -> Any:
    """
    Executa `code` em `namespace` e retorna o valor da última expressão.

    Blocos sem expressão final retornam None.
    """
    tree = parse_code(code)
    body = tree.body
    last = body[-1] if body else None
    scope = dict(MARKERS)
    scope.update(namespace)

    if isinstance(last, ast.Expr):
        head = ast.Module(body=body[:-1], type_ignores=[])
        if head.body:
            exec(compile(head, filename, "exec"), scope)
        return eval(compile(ast.Expression(body=last.value), filename, "eval"), scope)

    exec(compile(tree, filename, "exec"), scope)
    return None


# random, numpy.random e os filtros de warnings são estado do processo
_PROCESS_STATE_LOCK = threading.Lock()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def build_target(task: BuildTask) -> BuildOutcome:
    """Constrói um target; falhas são retornadas em `BuildOutcome.error`."""
    started_at = _now()
    t0 = time.perf_counter()
    captured: List[str] = []
    error: Optional[ErrorRecord] = None
    attempts = 0

    py_state = random.getstate()
    np_state = np.random.get_state()
    try:
        namespace = unpack_namespace(task.namespace)
        for attempts in range(1, task.retries + 2):
            random.seed(task.seed)
            np.random.seed(task.seed)
            with warnings.catch_warnings(record=True) as caught:
                warnings.simplefilter("always")
                try:
                    value = evaluate_code(task.command, namespace, filename=f"<target {task.target}>")
                except Exception as e:
                    error = ErrorRecord(
                        exc_type=type(e).__name__,
                        exc_message=str(e),
                        traceback=traceback.format_exc(),
                    )
                else:
                    error = None
                finally:
                    captured.extend(str(w.message) for w in caught)
            if error is None:
                break
    except Exception as e:
        # falha ao preparar o namespace (ex.: módulo não importável)
        error = ErrorRecord(exc_type=type(e).__name__, exc_message=str(e), traceback=traceback.format_exc())
        attempts = max(attempts, 1)
    finally:
        random.setstate(py_state)
        np.random.set_state(np_state)

    seconds = time.perf_counter() - t0
    if error is not None:
        return BuildOutcome(
            target=task.target,
            ok=False,
            seconds=seconds,
            attempts=attempts,
            started_at=started_at,
            finished_at=_now(),
            warnings=captured,
            error=error,
        )
    return BuildOutcome(
        target=task.target,
        ok=True,
        value=value,
        seconds=seconds,
        attempts=attempts,
        started_at=started_at,
        finished_at=_now(),
        warnings=captured,
    )


def build_target_exclusive(task: BuildTask) -> BuildOutcome:
    """`build_target` com exclusão mútua entre threads do mesmo processo."""
    with _PROCESS_STATE_LOCK:
        return build_target(task)

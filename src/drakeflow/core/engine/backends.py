"""
Backends de paralelismo.

Um backend recebe `BuildTask`s do scheduler e devolve `BuildOutcome`s.
O scheduler (processo principal) é o único que decide staleness e
escreve no cache; backends apenas executam `build_target`.

Protocolo:
    capacity  → quantas tasks podem estar em voo ao mesmo tempo
    submit    → enfileira uma task
    wait      → bloqueia até ao menos uma task terminar; retorna outcomes
    pending   → tasks em voo
    close     → libera recursos

Backends embutidos:
    loop      → sequencial, no próprio processo
    threads   → ThreadPoolExecutor (agendamento dinâmico; builds serializados
                pelo lock de estado global do worker)
    processes → ProcessPoolExecutor (agendamento dinâmico)
    staged    → joblib.Parallel por onda de targets prontos

Backends adicionais são registrados com `register_backend(name, factory)`,
onde `factory(settings) -> backend`.
"""

from __future__ import annotations

import concurrent.futures
import traceback
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List

from joblib import Parallel, delayed

from drakeflow.core.config.settings import MakeSettings
from drakeflow.core.exceptions import BackendNotFoundError

from .worker import BuildOutcome, BuildTask, ErrorRecord, build_target, build_target_exclusive


class LoopBackend:
    """Executa uma task por vez, no processo do scheduler."""

    capacity = 1

    def __init__(self, settings: MakeSettings) -> None:
        self._queue: List[BuildTask] = []

    @property
    def pending(self) -> int:
        return len(self._queue)

    def submit(self, task: BuildTask) -> None:
        self._queue.append(task)

    def wait(self) -> List[BuildOutcome]:
        if not self._queue:
            return []
        return [build_target(self._queue.pop(0))]

    def close(self) -> None:
        self._queue.clear()


class _FuturesBackend(ABC):
    """Agendamento dinâmico sobre `concurrent.futures`."""

    build = staticmethod(build_target)

    def __init__(self, settings: MakeSettings) -> None:
        self.capacity = settings.jobs
        self._pool = self._make_pool(settings.jobs)
        self._futures: Dict[concurrent.futures.Future, BuildTask] = {}

    @abstractmethod
    def _make_pool(self, jobs: int) -> concurrent.futures.Executor:
        ...

    @property
    def pending(self) -> int:
        return len(self._futures)

    def submit(self, task: BuildTask) -> None:
        future = self._pool.submit(self.build, task)
        self._futures[future] = task

    def wait(self) -> List[BuildOutcome]:
        if not self._futures:
            return []
        done, _ = concurrent.futures.wait(self._futures, return_when=concurrent.futures.FIRST_COMPLETED)
        outcomes = []
        for future in sorted(done, key=lambda f: self._futures[f].target):
            task = self._futures.pop(future)
            try:
                outcomes.append(future.result())
            except Exception as e:
                # erro de transporte (pickle) ou worker encerrado
                outcomes.append(
                    BuildOutcome(
                        target=task.target,
                        ok=False,
                        attempts=1,
                        error=ErrorRecord(
                            exc_type=type(e).__name__,
                            exc_message=str(e),
                            traceback="".join(traceback.format_exception(type(e), e, e.__traceback__)),
                        ),
                    )
                )
        return outcomes

    def close(self) -> None:
        self._pool.shutdown(wait=True, cancel_futures=True)
        self._futures.clear()


class ThreadsBackend(_FuturesBackend):
    build = staticmethod(build_target_exclusive)

    def _make_pool(self, jobs: int) -> concurrent.futures.Executor:
        return concurrent.futures.ThreadPoolExecutor(max_workers=jobs, thread_name_prefix="drakeflow")


class ProcessesBackend(_FuturesBackend):
    def _make_pool(self, jobs: int) -> concurrent.futures.Executor:
        return concurrent.futures.ProcessPoolExecutor(max_workers=jobs)


class StagedBackend:
    """
    Executa, a cada `wait`, todas as tasks enfileiradas com joblib.Parallel.

    Como o scheduler submete todos os targets prontos antes de esperar,
    cada chamada corresponde a um estágio do grafo.
    """

    capacity = None

    def __init__(self, settings: MakeSettings) -> None:
        self._parallel = Parallel(n_jobs=settings.jobs, backend=settings.joblib_backend)
        self._build = build_target_exclusive if settings.joblib_backend == "threading" else build_target
        self._queue: List[BuildTask] = []

    @property
    def pending(self) -> int:
        return len(self._queue)

    def submit(self, task: BuildTask) -> None:
        self._queue.append(task)

    def wait(self) -> List[BuildOutcome]:
        batch, self._queue = self._queue, []
        if not batch:
            return []
        return list(self._parallel(delayed(self._build)(task) for task in batch))

    def close(self) -> None:
        self._queue.clear()


BackendFactory = Callable[[MakeSettings], Any]

_BACKENDS: Dict[str, BackendFactory] = {
    "loop": LoopBackend,
    "threads": ThreadsBackend,
    "processes": ProcessesBackend,
    "staged": StagedBackend,
}


def register_backend(name: str, factory: BackendFactory) -> None:
    """Registra (ou substitui) um backend de paralelismo."""
    if not isinstance(name, str) or not name.strip():
        raise ValueError("Nome de backend deve ser string não vazia")
    if not callable(factory):
        raise TypeError("factory deve ser chamável: factory(settings) -> backend")
    _BACKENDS[name] = factory


def available_backends() -> List[str]:
    return sorted(_BACKENDS)


def get_backend(settings: MakeSettings) -> Any:
    """
    Instancia o backend configurado em `engine.parallelism`.

    Raises:
        BackendNotFoundError: nome não registrado.
    """
    factory = _BACKENDS.get(settings.parallelism)
    if factory is None:
        raise BackendNotFoundError(
            message=f"Backend de paralelismo desconhecido: {settings.parallelism!r}",
            details={"parallelism": settings.parallelism, "available": available_backends()},
            hint="Use loop, threads, processes, staged ou registre um backend com register_backend().",
        )
    return factory(settings)

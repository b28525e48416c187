"""
Engine de execução do drakeflow (scheduler).

O Engine percorre o grafo em ordem topológica determinística e, para cada
target pronto (todas as dependências finalizadas), decide:

    1. desabilitado por config (`targets.<nome>.enabled: false`) → SKIPPED
    2. dependência falhou ou valor indisponível                   → SKIPPED
    3. nenhuma razão de rebuild (ver `staleness`)                 → UP_TO_DATE
    4. caso contrário → BuildTask enviada ao backend

Ao receber o resultado de uma build, apenas o scheduler escreve no cache:
valor, metadata, memo de arquivos e progresso.

Políticas:
    - Falhas de build nunca escapam: viram DrakeErrorPayload + traceback
      no metadata do target, no TargetResult e no Manifest
    - keep_going=False: após a primeira falha nenhum target novo é
      despachado; os restantes ficam SKIPPED
    - memory_strategy=autoclean: o valor em memória é descartado quando
      todos os dependentes selecionados terminam
    - Toda run gera um Manifest salvo em `<cache>/runs/`
"""

from __future__ import annotations

import sys
import traceback
import uuid
from bisect import insort
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Set, TextIO, Tuple

import pandas as pd

from drakeflow._version import __version__
from drakeflow.core.cache.store import Cache
from drakeflow.core.config.hashing import compute_config_hash
from drakeflow.core.config.settings import MakeSettings
from drakeflow.core.errors import (
    DrakeErrorPayload,
    dependency_unavailable,
    target_build_error,
    target_value_not_storable,
)
from drakeflow.core.exceptions import TargetBuildError, TargetNotCachedError
from drakeflow.core.graph.builder import build_graph
from drakeflow.core.graph.graph import NODE_IMPORT, NODE_MISSING, DependencyGraph
from drakeflow.core.hashing.files import FileFingerprint
from drakeflow.core.hashing.fingerprint import digest, hash_code, hash_value
from drakeflow.core.pipeline.context import RunContext
from drakeflow.core.pipeline.types import TargetResult, TargetStatus
from drakeflow.core.plan.triggers import Trigger
from drakeflow.core.traceability.manifest import (
    RunManifest,
    add_event,
    create_manifest,
    finish_run,
    target_failed,
    target_finished,
    target_skipped,
    target_started,
)

from .backends import get_backend
from .planner import plan_execution
from .staleness import TargetFingerprint, current_fingerprint, file_hashes, outdated_reasons, should_build
from .worker import BuildOutcome, BuildTask, ErrorRecord, evaluate_code, pack_namespace


# ---------------------------------------------------------------------------
# Resultado
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MakeResult:
    """Resultado agregado de uma chamada de `make`."""

    run_id: str
    order: List[str]
    results: Dict[str, TargetResult] = field(default_factory=dict)
    manifest: Optional[RunManifest] = field(default=None, repr=False)
    context: Optional[RunContext] = field(default=None, repr=False)

    def __getitem__(self, target: str) -> TargetResult:
        return self.results[target]

    def _with_status(self, status: TargetStatus) -> List[str]:
        return [t for t in self.order if self.results[t].status == status]

    @property
    def built(self) -> List[str]:
        return self._with_status(TargetStatus.BUILT)

    @property
    def up_to_date(self) -> List[str]:
        return self._with_status(TargetStatus.UP_TO_DATE)

    @property
    def failed(self) -> List[str]:
        return self._with_status(TargetStatus.FAILED)

    @property
    def skipped(self) -> List[str]:
        return self._with_status(TargetStatus.SKIPPED)

    @property
    def ok(self) -> bool:
        return not self.failed

    def summary(self) -> Dict[str, int]:
        return {s.value: len(self._with_status(s)) for s in TargetStatus}

    def raise_on_failure(self) -> None:
        """Re-levanta a primeira falha (em ordem de execução) como TargetBuildError."""
        failed = self.failed
        if not failed:
            return
        first = self.results[failed[0]]
        error = first.error or {}
        raise TargetBuildError(
            message=f"{len(failed)} target(s) falharam; primeiro: {failed[0]}",
            details={"failed": failed, "error": error},
            hint=error.get("hint"),
        )

    def to_frame(self) -> pd.DataFrame:
        rows = [self.results[t].to_dict() for t in self.order]
        return pd.DataFrame(rows, columns=["target", "status", "summary", "reasons", "seconds", "attempts", "warnings", "error"])


# ---------------------------------------------------------------------------
# Avaliação compartilhada (make e outdated)
# ---------------------------------------------------------------------------

@dataclass
class Assessment:
    fingerprint: TargetFingerprint
    reasons: List[str]
    build: bool
    change_hash: Optional[str] = None
    namespace: Optional[Dict[str, Any]] = None


def resolved_trigger(graph: DependencyGraph, target: str, settings: MakeSettings) -> Trigger:
    return (graph.triggers.get(target) or Trigger()).resolve(settings.trigger_defaults)


def build_namespace(
    graph: DependencyGraph,
    target: str,
    load: Callable[[str], Any],
) -> Dict[str, Any]:
    """Imports usados pelo target + valores dos targets lidos pelo comando."""
    namespace: Dict[str, Any] = {}
    for dep in sorted(graph.parents(target)):
        if graph.kind(dep) == NODE_IMPORT:
            namespace[dep] = graph.import_values[dep]
    for dep in sorted(graph.value_deps[target]):
        namespace[dep] = load(dep)
    return namespace


def evaluate_trigger(trig: Trigger, namespace: Optional[Dict[str, Any]], target: str) -> Tuple[bool, Optional[str]]:
    condition = trig.condition
    if isinstance(condition, str):
        condition = bool(evaluate_code(condition, dict(namespace or {}), filename=f"<condition {target}>"))
    change_hash = None
    if trig.change is not None:
        change_hash = hash_value(evaluate_code(trig.change, dict(namespace or {}), filename=f"<change {target}>"))
    return bool(condition), change_hash


def assess_target(
    graph: DependencyGraph,
    target: str,
    *,
    cache: Cache,
    settings: MakeSettings,
    value_hashes: Mapping[str, Optional[str]],
    memo: Dict[str, FileFingerprint],
    load: Callable[[str], Any],
) -> Assessment:
    """
    Calcula fingerprint, razões e a decisão de rebuild de um target.

    Raises:
        TargetNotCachedError: valor de dependência indisponível (apenas
            quando o trigger precisa avaliar código).
        Exception: erros ao avaliar `condition`/`change` propagam.
    """
    trig = resolved_trigger(graph, target, settings)
    meta = cache.get_meta(target)
    current = current_fingerprint(graph, target, value_hashes=value_hashes, global_seed=settings.seed, memo=memo)

    namespace = None
    if trig.codes():
        namespace = build_namespace(graph, target, load)
    condition, change_hash = evaluate_trigger(trig, namespace, target)

    reasons = outdated_reasons(
        meta=meta,
        current=current,
        trigger=trig,
        has_value=cache.has_value(target),
        output_files=file_hashes(graph.file_out[target], memo),
        change_hash=change_hash,
        condition=condition,
    )
    return Assessment(
        fingerprint=current,
        reasons=reasons,
        build=should_build(reasons, trig, condition=condition),
        change_hash=change_hash,
        namespace=namespace,
    )


def recorded_value_hash(cache: Cache, target: str) -> Optional[str]:
    meta = cache.get_meta(target)
    if meta is None or not cache.has_value(target):
        return None
    return meta.get("value_hash")


def plan_hash(graph: DependencyGraph) -> str:
    parts = [f"{t}|{hash_code(graph.commands[t])}|{graph.seeds[t]}" for t in graph.targets]
    return digest(*parts)


def check_outdated(
    graph: DependencyGraph,
    *,
    cache: Cache,
    settings: MakeSettings,
    targets: Optional[Iterable[str]] = None,
) -> Dict[str, List[str]]:
    """
    Simula `make` sem construir nada: target → razões de rebuild.

    Um target com upstream desatualizado é desatualizado com a razão
    `upstream`. Targets desabilitados por config são ignorados.
    """
    order = plan_execution(graph, targets)
    memo = cache.load_file_memo()
    value_hashes: Dict[str, Optional[str]] = {}
    out: Dict[str, List[str]] = {}

    for target in order:
        if not settings.is_enabled(target):
            value_hashes[target] = recorded_value_hash(cache, target)
            continue
        upstream_outdated = any(dep in out for dep in graph.target_dependencies(target))
        try:
            a = assess_target(
                graph,
                target,
                cache=cache,
                settings=settings,
                value_hashes=value_hashes,
                memo=memo,
                load=cache.get_value,
            )
            reasons = list(a.reasons) if a.build else []
        except TargetNotCachedError:
            reasons = ["depend"]
        except Exception:
            # condition/change que falha será registrado como erro no make
            reasons = ["failed"]
        if upstream_outdated:
            reasons.append("upstream")
        if reasons:
            out[target] = reasons
        value_hashes[target] = recorded_value_hash(cache, target)
    return out


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _payload_from_record(target: str, record: ErrorRecord, attempts: int) -> DrakeErrorPayload:
    return target_build_error(
        target=target,
        exc_type=record.exc_type,
        exc_message=record.exc_message,
        attempts=attempts,
    )


class Engine:
    """Scheduler de targets (planner + staleness + backend + cache)."""

    def __init__(
        self,
        *,
        plan: pd.DataFrame,
        envir: Mapping[str, Any],
        settings: MakeSettings,
        cache: Optional[Cache] = None,
        targets: Optional[Iterable[str]] = None,
        echo: Optional[TextIO] = None,
    ) -> None:
        self.plan = plan
        self.envir = envir
        self.settings = settings
        self.cache = cache if cache is not None else Cache(settings.cache_path)
        self.requested = None if targets is None else list(targets)
        self.echo = echo if echo is not None else sys.stdout

    # ------------------------------------------------------------------
    # Saída
    # ------------------------------------------------------------------
    def _say(self, level: int, message: str) -> None:
        if self.settings.verbose >= level:
            print(message, file=self.echo)

    # ------------------------------------------------------------------
    # Valores
    # ------------------------------------------------------------------
    def _load(self, target: str) -> Any:
        if self.ctx.has_value(target):
            return self.ctx.get_value(target)
        value = self.cache.get_value(target)
        self.ctx.set_value(target, value)
        return value

    def _autoclean(self, finished: str) -> None:
        if self.settings.memory_strategy != "autoclean":
            return
        for name in list(self.deps[finished]) + [finished]:
            if all(d in self.results for d in self.dependents[name]):
                self.ctx.drop_value(name)

    # ------------------------------------------------------------------
    # Registro de resultados
    # ------------------------------------------------------------------
    def _record(self, result: TargetResult) -> None:
        t = result.target
        self.results[t] = result
        ts = _utcnow()
        level = "info"
        if result.status == TargetStatus.SKIPPED:
            target_skipped(self.manifest, target=t, ts=ts, reason=result.summary)
            level = "warning"
        elif result.status == TargetStatus.FAILED:
            target_failed(self.manifest, target=t, ts=ts, error=result.error or {})
            level = "error"
        else:
            target_finished(self.manifest, target=t, ts=ts, result=result.to_dict())
        self.ctx.log(target=t, level=level, message=result.summary, status=result.status.value)
        for w in result.warnings:
            self.ctx.add_warning(target=t, message=w)

        echo_level = 2 if result.status == TargetStatus.UP_TO_DATE else 1
        self._say(echo_level, f"{result.status.value:<10} {t}" + (f" ({result.seconds:.2f}s)" if result.seconds else ""))

        self._release(t)
        self._autoclean(t)

    def _release(self, finished: str) -> None:
        for child in sorted(self.dependents[finished]):
            pending = self.waiting[child]
            pending.discard(finished)
            if not pending and child not in self.results and child not in self.in_flight and child not in self.ready:
                insort(self.ready, child)

    def _skip(self, target: str, summary: str, error: Optional[DrakeErrorPayload] = None) -> None:
        self.value_hashes[target] = recorded_value_hash(self.cache, target)
        self._record(
            TargetResult(
                target=target,
                status=TargetStatus.SKIPPED,
                summary=summary,
                error=error.to_dict() if error is not None else None,
            )
        )

    def _fail(
        self,
        target: str,
        payload: DrakeErrorPayload,
        *,
        fingerprint: Optional[TargetFingerprint],
        traceback_text: str,
        reasons: List[str],
        seconds: float = 0.0,
        attempts: int = 0,
        warnings: Optional[List[str]] = None,
    ) -> None:
        meta: Dict[str, Any] = fingerprint.to_meta() if fingerprint is not None else {}
        meta.update(
            {
                "status": "failed",
                "command": self.graph.commands[target],
                "value_hash": None,
                "output_files": {},
                "built_at": _utcnow().isoformat(),
                "seconds": seconds,
                "attempts": attempts,
                "warnings": list(warnings or []),
                "error": payload.to_dict(),
                "traceback": traceback_text,
                "run_id": self.ctx.run_id,
            }
        )
        self.cache.set_meta(target, meta)
        self.cache.set_progress(target, "failed")
        self.value_hashes[target] = None
        if not self.settings.keep_going:
            self.stopped = True
        self._record(
            TargetResult(
                target=target,
                status=TargetStatus.FAILED,
                summary=payload.message,
                reasons=reasons,
                seconds=seconds,
                attempts=attempts,
                warnings=list(warnings or []),
                error={**payload.to_dict(), "traceback": traceback_text},
            )
        )

    # ------------------------------------------------------------------
    # Despacho
    # ------------------------------------------------------------------
    def _dispatch(self, target: str) -> None:
        if self.stopped:
            self._skip(target, "skipped after failure (keep_going=False)")
            return

        if not self.settings.is_enabled(target):
            self._skip(target, "skipped by config")
            return

        deps = self.deps[target]
        failed = sorted(d for d in deps if self.results[d].status == TargetStatus.FAILED)
        if failed:
            self._skip(
                target,
                "skipped due to failed dependency",
                dependency_unavailable(target=target, missing=failed),
            )
            return

        unavailable = sorted(
            d
            for d in deps & self.graph.value_deps[target]
            if self.results[d].status == TargetStatus.SKIPPED
            and not (self.ctx.has_value(d) or self.cache.has_value(d))
        )
        if unavailable:
            self._skip(
                target,
                "skipped due to unavailable dependency",
                dependency_unavailable(target=target, missing=unavailable),
            )
            return

        fingerprint: Optional[TargetFingerprint] = None
        try:
            a = assess_target(
                self.graph,
                target,
                cache=self.cache,
                settings=self.settings,
                value_hashes=self.value_hashes,
                memo=self.memo,
                load=self._load,
            )
            fingerprint = a.fingerprint
            if not a.build:
                self.value_hashes[target] = recorded_value_hash(self.cache, target)
                self._record(TargetResult(target=target, status=TargetStatus.UP_TO_DATE, summary="up to date"))
                return
            namespace = a.namespace if a.namespace is not None else build_namespace(self.graph, target, self._load)
        except TargetNotCachedError as e:
            self._skip(
                target,
                "skipped due to unavailable dependency",
                dependency_unavailable(target=target, missing=[e.details.get("target", "?")]),
            )
            return
        except Exception as e:
            self._fail(
                target,
                target_build_error(target=target, exc_type=type(e).__name__, exc_message=str(e)),
                fingerprint=fingerprint,
                traceback_text=traceback.format_exc(),
                reasons=[],
            )
            return

        missing = [p for p in self.graph.parents(target) if self.graph.kind(p) == NODE_MISSING]
        for name in sorted(missing):
            self.ctx.add_warning(target=target, message=f"nome '{name}' não encontrado no ambiente")

        self.cache.set_progress(target, "running")
        target_started(self.manifest, target=target, ts=_utcnow(), reasons=a.reasons)
        self.ctx.log(target=target, level="info", message="building", reasons=a.reasons)
        self._say(1, f"{'building':<10} {target} [{', '.join(a.reasons)}]")

        self.in_flight[target] = (a.fingerprint, a.reasons, a.change_hash)
        self.backend.submit(
            BuildTask(
                target=target,
                command=self.graph.commands[target],
                namespace=pack_namespace(namespace),
                seed=a.fingerprint.seed,
                retries=self.settings.retries,
            )
        )

    def _complete(self, outcome: BuildOutcome) -> None:
        target = outcome.target
        fingerprint, reasons, change_hash = self.in_flight.pop(target)

        if not outcome.ok:
            record = outcome.error or ErrorRecord(exc_type="RuntimeError", exc_message="build falhou", traceback="")
            self._fail(
                target,
                _payload_from_record(target, record, outcome.attempts),
                fingerprint=fingerprint,
                traceback_text=record.traceback,
                reasons=reasons,
                seconds=outcome.seconds,
                attempts=outcome.attempts,
                warnings=outcome.warnings,
            )
            return

        try:
            value_hash = hash_value(outcome.value)
            self.cache.set_value(target, outcome.value)
        except Exception as e:
            self._fail(
                target,
                target_value_not_storable(target=target, exc_type=type(e).__name__, exc_message=str(e)),
                fingerprint=fingerprint,
                traceback_text=traceback.format_exc(),
                reasons=reasons,
                seconds=outcome.seconds,
                attempts=outcome.attempts,
                warnings=outcome.warnings,
            )
            return

        meta = fingerprint.to_meta()
        meta.update(
            {
                "status": "built",
                "command": self.graph.commands[target],
                "value_hash": value_hash,
                "change_hash": change_hash,
                "output_files": file_hashes(self.graph.file_out[target], self.memo),
                "built_at": outcome.finished_at,
                "started_at": outcome.started_at,
                "seconds": outcome.seconds,
                "attempts": outcome.attempts,
                "warnings": list(outcome.warnings),
                "error": None,
                "traceback": None,
                "run_id": self.ctx.run_id,
            }
        )
        self.cache.set_meta(target, meta)
        self.cache.set_progress(target, "done")
        self.value_hashes[target] = value_hash
        self.ctx.set_value(target, outcome.value)

        self._record(
            TargetResult(
                target=target,
                status=TargetStatus.BUILT,
                summary="built",
                reasons=reasons,
                seconds=outcome.seconds,
                attempts=outcome.attempts,
                warnings=list(outcome.warnings),
            )
        )

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------
    def run(self) -> MakeResult:
        started = _utcnow()
        run_id = f"{started.strftime('%Y%m%dT%H%M%S')}-{uuid.uuid4().hex[:8]}"

        self.graph = build_graph(self.plan, self.envir)
        order = plan_execution(self.graph, self.requested)
        selected: Set[str] = set(order)

        self.deps: Dict[str, Set[str]] = {t: self.graph.target_dependencies(t) & selected for t in order}
        self.dependents: Dict[str, Set[str]] = {t: set() for t in order}
        for t, ds in self.deps.items():
            for d in ds:
                self.dependents[d].add(t)

        self.ctx = RunContext(
            run_id=run_id,
            created_at=started.isoformat(),
            config=self.settings.to_config(),
            meta={
                "cache_path": str(self.cache.path),
                "parallelism": self.settings.parallelism,
                "jobs": self.settings.jobs,
            },
        )
        self.manifest = create_manifest(
            run_id=run_id,
            started_at=started,
            drakeflow_version=__version__,
            config_hash=compute_config_hash(self.settings.to_config()),
            plan_hash=plan_hash(self.graph),
        )
        add_event(self.manifest, event_type="run_started", ts=started, payload={"targets": list(order)})
        for w in self.graph.warnings:
            add_event(self.manifest, event_type="graph_warning", ts=started, payload={"message": w})

        self.memo = self.cache.load_file_memo()
        self.results: Dict[str, TargetResult] = {}
        self.value_hashes: Dict[str, Optional[str]] = {}
        self.in_flight: Dict[str, Tuple[TargetFingerprint, List[str], Optional[str]]] = {}
        self.waiting: Dict[str, Set[str]] = {t: set(ds) for t, ds in self.deps.items()}
        self.ready: List[str] = sorted(t for t in order if not self.waiting[t])
        self.stopped = False

        self.backend = get_backend(self.settings)
        try:
            while self.ready or self.backend.pending:
                while self.ready and (self.backend.capacity is None or self.backend.pending < self.backend.capacity):
                    self._dispatch(self.ready.pop(0))
                if self.backend.pending:
                    for outcome in self.backend.wait():
                        self._complete(outcome)
        finally:
            self.backend.close()
            self.cache.save_file_memo(self.memo)

        result = MakeResult(
            run_id=run_id,
            order=list(order),
            results=dict(self.results),
            manifest=self.manifest,
            context=self.ctx,
        )
        finish_run(self.manifest, ts=_utcnow(), summary=result.summary())
        self.cache.save_run_manifest(self.manifest)
        self._say(1, "make: " + ", ".join(f"{k}={v}" for k, v in result.summary().items()))
        return result

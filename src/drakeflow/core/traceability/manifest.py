"""
Manifest — registro forense de uma chamada de `make`.

O Manifest consolida, de forma determinística e auditável:
    - metadados da run (run_id, started_at, finished_at, versão)
    - hashes das entradas (configuração efetiva e plano)
    - estado final de cada target considerado
    - Event Log ordenado de eventos explícitos

Princípios fundamentais:
    - Nenhum evento é emitido implicitamente
    - Toda mutação ocorre por chamadas explícitas da API
    - A ordem do Event Log reflete a ordem em que o scheduler observou
      os eventos
    - O Manifest é serializável e reconstruível (round-trip JSON)

Decisões:
    - UTC é o timezone canônico de todos os timestamps
    - Persistência em JSON determinístico (sort_keys)
    - Um manifest por run, salvo em `<cache>/runs/<run_id>.json`

Limites explícitos:
    - Não executa targets
    - Não decide políticas de execução (keep_going, skip)
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union


def _ensure_tzaware_utc(dt: datetime) -> datetime:
    """Timestamps naive são assumidos como UTC; os demais são convertidos."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _iso(dt: datetime) -> str:
    return _ensure_tzaware_utc(dt).isoformat()


def _ms_between(start: datetime, end: datetime) -> int:
    s = _ensure_tzaware_utc(start)
    e = _ensure_tzaware_utc(end)
    return max(0, int((e - s).total_seconds() * 1000))


@dataclass
class RunManifest:
    """
    Registro de uma run.

    Campos:
        - run: run_id, started_at, drakeflow_version (finished_at e summary
          ao final)
        - inputs: config_hash, plan_hash
        - targets: estado final por target
        - events: Event Log ordenado
    """

    run: Dict[str, Any]
    inputs: Dict[str, Any]
    targets: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    events: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Cópia serializável, independente do estado interno."""
        return {
            "run": dict(self.run),
            "inputs": dict(self.inputs),
            "targets": {k: dict(v) for k, v in self.targets.items()},
            "events": [dict(e) for e in self.events],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RunManifest":
        """Reconstrução permissiva: campos ausentes iniciam vazios."""
        return cls(
            run=dict(data.get("run", {})),
            inputs=dict(data.get("inputs", {})),
            targets={k: dict(v) for k, v in (data.get("targets", {}) or {}).items()},
            events=[dict(e) for e in (data.get("events", []) or [])],
        )


def create_manifest(
    *,
    run_id: str,
    started_at: datetime,
    drakeflow_version: str,
    config_hash: str,
    plan_hash: str,
) -> RunManifest:
    """
    Cria o Manifest inicial de uma run.

    Esta função **não emite eventos**: o Event Log inicia vazio e só é
    preenchido por `add_event` e pelas funções `target_*`.

    Args:
        run_id: identificador único da run.
        started_at: início da run (normalizado para UTC).
        drakeflow_version: versão do pacote.
        config_hash: hash da configuração efetiva.
        plan_hash: hash do plano (targets, comandos, seeds).

    Returns:
        RunManifest: manifest com targets e eventos vazios.
    """
    started_at = _ensure_tzaware_utc(started_at)
    return RunManifest(
        run={
            "run_id": run_id,
            "started_at": _iso(started_at),
            "drakeflow_version": drakeflow_version,
        },
        inputs={
            "config_hash": config_hash,
            "plan_hash": plan_hash,
        },
        targets={},
        events=[],
    )


def _get_manifest(manifest: Union[RunManifest, Dict[str, Any]]) -> Tuple[RunManifest, bool]:
    if isinstance(manifest, RunManifest):
        return manifest, False
    return RunManifest.from_dict(manifest), True


def _sync(manifest: Union[RunManifest, Dict[str, Any]], m: RunManifest, is_dict: bool) -> None:
    if is_dict:
        manifest.clear()
        manifest.update(m.to_dict())


def add_event(
    manifest: Union[RunManifest, Dict[str, Any]],
    *,
    event_type: str,
    ts: datetime,
    target: Optional[str] = None,
    payload: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Adiciona um evento ao Event Log.

    Cada chamada adiciona exatamente um evento; eventos não são
    reordenados nem deduplicados.

    Args:
        manifest: Manifest (objeto ou dict) a ser atualizado.
        event_type: tipo do evento (run_started, target_started, ...).
        ts: timestamp do evento.
        target: target associado, se houver.
        payload: dados adicionais livres.
    """
    ts = _ensure_tzaware_utc(ts)
    m, is_dict = _get_manifest(manifest)

    ev: Dict[str, Any] = {"event_type": event_type, "timestamp": _iso(ts)}
    if target is not None:
        ev["target"] = target
    if payload is not None:
        ev["payload"] = payload

    m.events.append(ev)
    _sync(manifest, m, is_dict)


def target_started(
    manifest: Union[RunManifest, Dict[str, Any]],
    *,
    target: str,
    ts: datetime,
    reasons: Optional[List[str]] = None,
) -> None:
    """Marca o target como `running` e registra `target_started`."""
    ts = _ensure_tzaware_utc(ts)
    m, is_dict = _get_manifest(manifest)

    m.targets.setdefault(target, {})
    m.targets[target].update(
        {
            "target": target,
            "status": "running",
            "started_at": _iso(ts),
            "reasons": list(reasons or []),
        }
    )

    add_event(m, event_type="target_started", ts=ts, target=target, payload={"reasons": list(reasons or [])})
    _sync(manifest, m, is_dict)


def target_finished(
    manifest: Union[RunManifest, Dict[str, Any]],
    *,
    target: str,
    ts: datetime,
    result: Dict[str, Any],
) -> None:
    """
    Registra a conclusão de um target (built ou up_to_date).

    `result` segue `TargetResult.to_dict()`: status, summary, seconds,
    attempts, warnings.
    """
    ts = _ensure_tzaware_utc(ts)
    m, is_dict = _get_manifest(manifest)

    s = m.targets.setdefault(target, {"target": target})
    started_iso = s.get("started_at")
    started_dt = datetime.fromisoformat(started_iso) if started_iso else ts

    status = result.get("status", "built")
    s.update(
        {
            "status": status,
            "finished_at": _iso(ts),
            "duration_ms": _ms_between(started_dt, ts),
            "summary": result.get("summary"),
            "seconds": result.get("seconds", 0.0),
            "attempts": result.get("attempts", 0),
            "warnings": result.get("warnings", []) or [],
        }
    )
    if "reasons" in result:
        s["reasons"] = list(result["reasons"] or [])

    add_event(
        m,
        event_type="target_finished",
        ts=ts,
        target=target,
        payload={"status": status, "duration_ms": s.get("duration_ms", 0)},
    )
    _sync(manifest, m, is_dict)


def target_failed(
    manifest: Union[RunManifest, Dict[str, Any]],
    *,
    target: str,
    ts: datetime,
    error: Dict[str, Any],
) -> None:
    """Marca o target como `failed` com o payload de erro serializado."""
    ts = _ensure_tzaware_utc(ts)
    m, is_dict = _get_manifest(manifest)

    s = m.targets.setdefault(target, {"target": target})
    s.update(
        {
            "status": "failed",
            "finished_at": _iso(ts),
            "error": dict(error),
        }
    )

    add_event(m, event_type="target_failed", ts=ts, target=target, payload={"error": dict(error)})
    _sync(manifest, m, is_dict)


def target_skipped(
    manifest: Union[RunManifest, Dict[str, Any]],
    *,
    target: str,
    ts: datetime,
    reason: str,
) -> None:
    ts = _ensure_tzaware_utc(ts)
    m, is_dict = _get_manifest(manifest)

    s = m.targets.setdefault(target, {"target": target})
    s.update({"status": "skipped", "finished_at": _iso(ts), "summary": reason})

    add_event(m, event_type="target_skipped", ts=ts, target=target, payload={"reason": reason})
    _sync(manifest, m, is_dict)


def finish_run(
    manifest: Union[RunManifest, Dict[str, Any]],
    *,
    ts: datetime,
    summary: Dict[str, int],
) -> None:
    """Fecha a run: finished_at, duração total e contagem por status."""
    ts = _ensure_tzaware_utc(ts)
    m, is_dict = _get_manifest(manifest)

    started = datetime.fromisoformat(m.run["started_at"]) if m.run.get("started_at") else ts
    m.run.update(
        {
            "finished_at": _iso(ts),
            "duration_ms": _ms_between(started, ts),
            "summary": dict(summary),
        }
    )

    add_event(m, event_type="run_finished", ts=ts, payload={"summary": dict(summary)})
    _sync(manifest, m, is_dict)


def save_manifest(manifest: Union[RunManifest, Dict[str, Any]], path: Path) -> None:
    """Persiste o Manifest em JSON determinístico (round-trip com `load_manifest`)."""
    data = manifest.to_dict() if isinstance(manifest, RunManifest) else manifest
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, ensure_ascii=False, indent=2, sort_keys=True, default=str), encoding="utf-8")


def load_manifest(path: Path) -> RunManifest:
    """Carrega um Manifest salvo por `save_manifest`."""
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    return RunManifest.from_dict(data)

"""
Decisão de staleness (target desatualizado) a partir de fingerprints.

Razões possíveis, na ordem em que são reportadas:

    missing   → sem valor no cache (ou nunca construído)
    failed    → a última build falhou
    command   → comando normalizado mudou
    depend    → valor de algum target upstream ou fingerprint de import mudou
    file      → file_in mudou, ou file_out mudou/sumiu
    seed      → seed efetiva mudou
    change    → valor de `trigger(change=...)` mudou
    condition → `trigger(condition=...)` verdadeiro

O fingerprint `depend` combina, para cada dependência direta:
    - target  → hash do valor armazenado
    - import  → fingerprint do import (código + imports usados)
    - missing → marcador fixo (um nome que passa a existir muda o fingerprint)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

from drakeflow.core.graph.graph import NODE_IMPORT, NODE_TARGET, DependencyGraph
from drakeflow.core.hashing.files import FileFingerprint, hash_file
from drakeflow.core.hashing.fingerprint import digest, hash_code, target_seed
from drakeflow.core.plan.triggers import Trigger


REASONS = ("missing", "failed", "command", "depend", "file", "seed", "change", "condition")


@dataclass(frozen=True)
class TargetFingerprint:
    command: str
    depend: str
    seed: int
    input_files: Dict[str, Optional[str]] = field(default_factory=dict)

    def to_meta(self) -> Dict[str, Any]:
        return {
            "command_hash": self.command,
            "depend_hash": self.depend,
            "seed": self.seed,
            "input_files": dict(self.input_files),
        }


def effective_seed(graph: DependencyGraph, target: str, global_seed: int) -> int:
    seed = graph.seeds.get(target)
    return target_seed(global_seed, target) if seed is None else int(seed)


def file_hashes(paths: Iterable[str], memo: Optional[Dict[str, FileFingerprint]] = None) -> Dict[str, Optional[str]]:
    return {p: hash_file(p, memo=memo) for p in sorted(paths)}


def depend_fingerprint(graph: DependencyGraph, target: str, value_hashes: Mapping[str, Optional[str]]) -> str:
    parts: List[str] = []
    for dep in graph.dependency_nodes(target):
        kind = graph.kind(dep)
        if kind == NODE_TARGET:
            parts.append(f"target:{dep}={value_hashes.get(dep)}")
        elif kind == NODE_IMPORT:
            parts.append(f"import:{dep}={graph.nodes[dep].fingerprint}")
        else:
            parts.append(f"missing:{dep}")
    return digest(*parts)


def current_fingerprint(
    graph: DependencyGraph,
    target: str,
    *,
    value_hashes: Mapping[str, Optional[str]],
    global_seed: int,
    memo: Optional[Dict[str, FileFingerprint]] = None,
) -> TargetFingerprint:
    """Fingerprint atual de um target (antes de qualquer build)."""
    return TargetFingerprint(
        command=hash_code(graph.commands[target]),
        depend=depend_fingerprint(graph, target, value_hashes),
        seed=effective_seed(graph, target, global_seed),
        input_files=file_hashes(graph.input_files(target), memo),
    )


def outdated_reasons(
    *,
    meta: Optional[Mapping[str, Any]],
    current: TargetFingerprint,
    trigger: Trigger,
    has_value: bool,
    output_files: Mapping[str, Optional[str]],
    change_hash: Optional[str] = None,
    condition: bool = False,
) -> List[str]:
    """
    Razões de rebuild de um target.

    Args:
        meta: metadata da última build (None: nunca construído).
        current: fingerprint atual.
        trigger: trigger já resolvido (flags sem None).
        has_value: existe valor no cache.
        output_files: hashes atuais dos file_out do target.
        change_hash: hash atual do valor de `trigger.change`, se houver.
        condition: valor avaliado de `trigger.condition`.

    Returns:
        List[str]: razões em ordem canônica (ver REASONS).
    """
    if meta is None:
        return ["missing"] + (["condition"] if condition else [])

    reasons: List[str] = []
    if trigger.missing and not has_value:
        reasons.append("missing")
    if meta.get("status") == "failed":
        reasons.append("failed")
    if trigger.command and meta.get("command_hash") != current.command:
        reasons.append("command")
    if trigger.depend and meta.get("depend_hash") != current.depend:
        reasons.append("depend")
    if trigger.file:
        recorded_outputs = dict(meta.get("output_files") or {})
        inputs_changed = dict(meta.get("input_files") or {}) != dict(current.input_files)
        outputs_changed = any(recorded_outputs.get(p) != h or h is None for p, h in output_files.items())
        if inputs_changed or outputs_changed:
            reasons.append("file")
    if trigger.seed and meta.get("seed") != current.seed:
        reasons.append("seed")
    if trigger.change is not None and meta.get("change_hash") != change_hash:
        reasons.append("change")
    if condition:
        reasons.append("condition")
    return reasons


def should_build(reasons: List[str], trigger: Trigger, *, condition: bool) -> bool:
    """
    Decide o rebuild conforme o modo do trigger.

    `missing` e `failed` forçam o rebuild em qualquer modo.
    """
    if "missing" in reasons or "failed" in reasons:
        return True
    if trigger.mode == "condition":
        return condition
    if trigger.mode == "blacklist":
        return condition and any(r != "condition" for r in reasons)
    return bool(reasons)

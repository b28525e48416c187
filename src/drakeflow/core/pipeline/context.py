"""
Contexto de execução de uma chamada de `make`.

O `RunContext` concentra o estado explícito de uma run:

    - identidade (run_id, created_at) e configuração efetiva
    - store em memória de valores de targets já carregados ou construídos
    - log estruturado de eventos
    - warnings por target

Invariantes:
    - Eventos sempre incluem `run_id` e `target`
    - Warnings são agrupados por target
    - Valores em memória são indexados pelo nome do target

Limites explícitos:
    - Não executa comandos
    - Não persiste dados (ver `cache.store`)
    - Não registra eventos no manifest
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List


@dataclass
class RunContext:
    """
    Contexto compartilhado de uma run.

    Campos:
    - run_id: identificador único da execução
    - created_at: timestamp UTC de criação do contexto
    - config: configuração efetiva (defaults + overrides)
    - meta: metadados livres (cache_path, backend, ...)
    - warnings: warnings por target
    - events: log estruturado de eventos
    - _values: valores de targets em memória (nome → valor)
    """

    run_id: str
    created_at: str
    config: Dict[str, Any]
    meta: Dict[str, Any] = field(default_factory=dict)

    warnings: Dict[str, List[str]] = field(default_factory=dict)
    events: List[Dict[str, Any]] = field(default_factory=list)

    _values: Dict[str, Any] = field(default_factory=dict, repr=False)

    # -----------------------------
    # Valores em memória
    # -----------------------------
    def set_value(self, target: str, value: Any) -> None:
        self._values[target] = value

    def has_value(self, target: str) -> bool:
        return target in self._values

    def get_value(self, target: str) -> Any:
        if target not in self._values:
            raise KeyError(target)
        return self._values[target]

    def drop_value(self, target: str) -> None:
        self._values.pop(target, None)

    def loaded_targets(self) -> List[str]:
        return sorted(self._values)

    # -----------------------------
    # Logging & warnings
    # -----------------------------
    def log(self, *, target: str, level: str, message: str, **extra: Any) -> None:
        event = {
            "run_id": self.run_id,
            "target": target,
            "level": level,
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        event.update(extra)
        self.events.append(event)

    def add_warning(self, *, target: str, message: str) -> None:
        if target not in self.warnings:
            self.warnings[target] = []
        self.warnings[target].append(message)

"""
Tipos canônicos de execução do drakeflow.

    - TargetStatus → estados finais de um target em uma run
    - TargetResult → resultado imutável por target

Invariantes:
    - Enums possuem valores textuais canônicos (persistidos no manifest)
    - TargetResult é imutável

Limites explícitos:
    - Não executa targets
    - Não decide políticas de execução
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class TargetStatus(str, Enum):
    """
    Estados finais de um target em uma chamada de `make`.

        - BUILT: comando executado e valor armazenado
        - UP_TO_DATE: nenhuma razão de rebuild; valor do cache reaproveitado
        - FAILED: comando levantou exceção (após as tentativas configuradas)
        - SKIPPED: não executado (config, dependência falhou ou indisponível)

    Estados transitórios (running) pertencem ao progresso do cache, não a
    este enum.
    """

    BUILT = "built"
    UP_TO_DATE = "up_to_date"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class TargetResult:
    target: str
    status: TargetStatus
    summary: str
    reasons: List[str] = field(default_factory=list)
    seconds: float = 0.0
    attempts: int = 0
    warnings: List[str] = field(default_factory=list)
    error: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target": self.target,
            "status": self.status.value,
            "summary": self.summary,
            "reasons": list(self.reasons),
            "seconds": self.seconds,
            "attempts": self.attempts,
            "warnings": list(self.warnings),
            "error": dict(self.error) if self.error is not None else None,
        }

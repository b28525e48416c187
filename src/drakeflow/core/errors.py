"""
drakeflow — Canonical Error Structures (v1)

Este módulo define o padrão canônico de erros de build do drakeflow.
Erros de targets são artefatos persistidos no cache e devem ser:

- explícitos
- serializáveis
- rastreáveis
- acionáveis

Nenhuma falha de target é silenciada: ela fica registrada no metadata
(`diagnose`) e no Manifest da run.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional


# ---------------------------------------------------------------------------
# Payload canônico
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DrakeErrorPayload:
    """
    Payload canônico de erro do drakeflow.

    Campos:
    - type: código estável do erro (não é texto livre)
    - message: mensagem curta, humana e objetiva
    - details: dados estruturados relevantes para diagnóstico
    - hint: ação sugerida ao usuário (onde corrigir)
    """

    type: str
    message: str
    details: Dict[str, Any]
    hint: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Retorna representação serializável do erro."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DrakeErrorPayload":
        return cls(
            type=str(data.get("type", ENGINE_EXECUTION_ERROR)),
            message=str(data.get("message", "")),
            details=dict(data.get("details", {}) or {}),
            hint=data.get("hint"),
        )


# ---------------------------------------------------------------------------
# Catálogo canônico de tipos de erro (v1)
# ---------------------------------------------------------------------------

TARGET_BUILD_ERROR = "TARGET_BUILD_ERROR"
TARGET_VALUE_NOT_STORABLE = "TARGET_VALUE_NOT_STORABLE"
DEPENDENCY_UNAVAILABLE = "DEPENDENCY_UNAVAILABLE"

ENGINE_EXECUTION_ERROR = "ENGINE_EXECUTION_ERROR"


# ---------------------------------------------------------------------------
# Helpers de fábrica
# ---------------------------------------------------------------------------

def target_build_error(
    *,
    target: str,
    exc_type: str,
    exc_message: str,
    attempts: int = 1,
    hint: str = "Inspecione o traceback com diagnose(target) e corrija o comando ou as funções usadas.",
) -> DrakeErrorPayload:
    return DrakeErrorPayload(
        type=TARGET_BUILD_ERROR,
        message=f"Falha ao construir o target '{target}'",
        details={
            "target": target,
            "exc_type": exc_type,
            "exc_message": exc_message,
            "attempts": attempts,
        },
        hint=hint,
    )


def target_value_not_storable(
    *,
    target: str,
    exc_type: str,
    exc_message: str,
    hint: str = "Retorne um valor serializável (picklable) ou grave o resultado com file_out().",
) -> DrakeErrorPayload:
    return DrakeErrorPayload(
        type=TARGET_VALUE_NOT_STORABLE,
        message=f"Valor do target '{target}' não pode ser armazenado no cache",
        details={
            "target": target,
            "exc_type": exc_type,
            "exc_message": exc_message,
        },
        hint=hint,
    )


def dependency_unavailable(
    *,
    target: str,
    missing: List[str],
    hint: str = "Construa (ou habilite) os targets upstream antes deste target.",
) -> DrakeErrorPayload:
    return DrakeErrorPayload(
        type=DEPENDENCY_UNAVAILABLE,
        message=f"Dependências indisponíveis para o target '{target}'",
        details={
            "target": target,
            "missing": sorted(missing),
        },
        hint=hint,
    )

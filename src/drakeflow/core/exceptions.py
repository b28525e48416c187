"""
drakeflow — Canonical Exceptions (v1)

Este módulo define as exceções tipadas internas do drakeflow.

Objetivo:
- Permitir que plan, graph, cache e engine levantem erros semânticos tipados
- Facilitar o mapeamento determinístico para DrakeErrorPayload
- Evitar ValueError/RuntimeError genéricos em validações estruturais

Regras:
- Exceções carregam apenas dados estruturados (serializáveis) em `details`.
- Erros de build de targets NÃO usam estas exceções para escapar do `make`;
  eles são convertidos em payload e persistidos no metadata do target.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass(eq=False)
class DrakeException(Exception):
    """Base class para exceções internas do drakeflow.

    Importante:
    - Sempre carregar dados estruturados em `details`
    - Mensagem deve ser curta e humana
    - Não é frozen: o interpretador atribui `__traceback__` ao relançar
      a exceção (ex.: dentro de um `@contextmanager`)
    """

    message: str
    details: Dict[str, Any] = field(default_factory=dict)
    hint: Optional[str] = None

    def __str__(self) -> str:  # pragma: no cover
        return self.message


# ---------------------------------------------------------------------------
# Plan
# ---------------------------------------------------------------------------

@dataclass(eq=False)
class PlanValidationError(DrakeException):
    """Plano estruturalmente inválido (colunas ausentes, comando vazio, ...)."""


@dataclass(eq=False)
class DuplicateTargetError(PlanValidationError):
    """Dois ou mais targets com o mesmo nome."""


@dataclass(eq=False)
class InvalidTargetNameError(PlanValidationError):
    """Nome de target não é um identificador Python válido."""


@dataclass(eq=False)
class CommandSyntaxError(PlanValidationError):
    """Comando de um target não é código Python válido."""


@dataclass(eq=False)
class TransformError(PlanValidationError):
    """Transformação (map_/cross/combine) inconsistente."""


# ---------------------------------------------------------------------------
# Análise / Grafo
# ---------------------------------------------------------------------------

@dataclass(eq=False)
class AnalysisError(DrakeException):
    """Código de comando ou função não pôde ser analisado."""


@dataclass(eq=False)
class CycleDetectedError(DrakeException):
    """O grafo de dependências contém um ciclo."""


@dataclass(eq=False)
class FileOutputConflictError(DrakeException):
    """O mesmo arquivo é declarado em `file_out` por mais de um target."""


@dataclass(eq=False)
class UnknownTargetError(DrakeException):
    """Target solicitado não existe no plano."""


# ---------------------------------------------------------------------------
# Hashing / Cache
# ---------------------------------------------------------------------------

@dataclass(eq=False)
class HashingError(DrakeException):
    """Valor não pôde ser convertido em fingerprint."""


@dataclass(eq=False)
class TargetNotCachedError(DrakeException):
    """Valor do target não existe no cache."""


@dataclass(eq=False)
class CacheCorruptedError(DrakeException):
    """Arquivo de metadata do cache ilegível."""


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

@dataclass(eq=False)
class EngineConfigurationError(DrakeException):
    """Configuração inválida ou inconsistente para execução."""


@dataclass(eq=False)
class BackendNotFoundError(EngineConfigurationError):
    """Backend de paralelismo não registrado."""


@dataclass(eq=False)
class TargetBuildError(DrakeException):
    """Falha de build re-levantada sob demanda (`MakeResult.raise_on_failure`)."""

"""
Estruturas de execução do drakeflow.

    - context → RunContext (valores em memória, eventos, warnings)
    - types   → TargetStatus, TargetResult
"""

from .context import RunContext
from .types import TargetResult, TargetStatus

__all__ = ["RunContext", "TargetResult", "TargetStatus"]

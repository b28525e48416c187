"""
Analisador de dependências do drakeflow.

    - markers → file_in, file_out, ignore, no_deps
    - code    → análise estática (AST) e normalização de código
"""

from .code import CodeDependencies, analyze_code, deps_code, normalize_code, parse_code
from .markers import MARKERS, file_in, file_out, ignore, no_deps

__all__ = [
    "CodeDependencies",
    "analyze_code",
    "deps_code",
    "normalize_code",
    "parse_code",
    "MARKERS",
    "file_in",
    "file_out",
    "ignore",
    "no_deps",
]

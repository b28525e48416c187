"""
Marcadores usados dentro de comandos e funções importadas.

Em tempo de execução todos são identidades (retornam o que recebem).
O significado deles existe apenas para a análise estática de
dependências (`analysis.code`):

    - file_in("raw.csv")     → o target depende do conteúdo do arquivo
    - file_out("plot.png")   → o target produz o arquivo
    - ignore(expr)           → expr não gera dependências nem entra no fingerprint
    - no_deps(expr)          → expr não gera dependências, mas entra no fingerprint
"""

from __future__ import annotations

from typing import Any, Dict


def _paths(paths: tuple) -> Any:
    if len(paths) == 1:
        return paths[0]
    return list(paths)


def file_in(*paths: str) -> Any:
    """Declara arquivos de entrada; retorna o caminho (ou lista de caminhos)."""
    return _paths(paths)


def file_out(*paths: str) -> Any:
    """Declara arquivos de saída; retorna o caminho (ou lista de caminhos)."""
    return _paths(paths)


def ignore(x: Any = None) -> Any:
    return x


def no_deps(x: Any = None) -> Any:
    return x


MARKERS: Dict[str, Any] = {
    "file_in": file_in,
    "file_out": file_out,
    "ignore": ignore,
    "no_deps": no_deps,
}

FILE_MARKERS = ("file_in", "file_out")
OPAQUE_MARKERS = ("ignore", "no_deps")

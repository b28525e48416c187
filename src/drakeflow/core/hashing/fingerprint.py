"""
Fingerprints de valores, código e seeds.

Política (v1):
    - valores: `joblib.hash` (md5 sobre o pickle, com suporte eficiente
      a arrays numpy e DataFrames)
    - código: SHA-256 da forma normalizada (`analysis.normalize_code`)
    - combinação: SHA-256 sobre as partes em ordem (sensível à ordem)

Invariantes:
    - O mesmo valor produz sempre o mesmo fingerprint
    - Comentários, docstrings e formatação não alteram fingerprints de código
"""

from __future__ import annotations

import hashlib
from typing import Any, Callable, Optional, Union

import joblib

from drakeflow.core.analysis.code import normalize_code
from drakeflow.core.exceptions import HashingError


def digest(*parts: Optional[str]) -> str:
    """Combina partes (em ordem) em um SHA-256; None entra como vazio."""
    h = hashlib.sha256()
    for part in parts:
        h.update(b"\x1f")
        h.update(("" if part is None else str(part)).encode("utf-8"))
    return h.hexdigest()


def hash_value(value: Any) -> str:
    """Fingerprint de um valor arbitrário.

    Raises:
        HashingError: se o valor não puder ser serializado.
    """
    try:
        return joblib.hash(value)
    except Exception as e:
        raise HashingError(
            message=f"Não foi possível calcular o hash de um valor do tipo {type(value).__name__}",
            details={"type": type(value).__name__, "error": str(e)},
            hint="Use valores serializáveis (picklable) em targets e no ambiente.",
        ) from e


def hash_code(code: Union[str, Callable[..., Any]]) -> str:
    return hashlib.sha256(normalize_code(code).encode("utf-8")).hexdigest()


def hash_function(func: Callable[..., Any]) -> str:
    return hash_code(func)


def target_seed(global_seed: int, target: str) -> int:
    """Seed reprodutível por target, derivada da seed global e do nome."""
    raw = hashlib.sha256(f"{global_seed}:{target}".encode("utf-8")).hexdigest()
    return int(raw[:8], 16) % (2**31 - 1)

"""
Fingerprints de arquivos e diretórios declarados com file_in/file_out.

Arquivos grandes são relidos apenas quando mudam: um memo
(`path -> {size, mtime_ns, hash}`) persistido no cache permite reaproveitar
o hash quando tamanho e mtime são os mesmos da última leitura.

Decisões (v1):
    - Arquivos: SHA-256 do conteúdo, lido em blocos
    - Diretórios: SHA-256 sobre (caminho relativo, hash) de cada arquivo,
      em ordem lexicográfica
    - Caminho inexistente: fingerprint None
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Union


_CHUNK = 1024 * 1024


@dataclass(frozen=True)
class FileFingerprint:
    size: int
    mtime_ns: int
    hash: str

    def to_dict(self) -> Dict[str, Any]:
        return {"size": self.size, "mtime_ns": self.mtime_ns, "hash": self.hash}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FileFingerprint":
        return cls(size=int(data["size"]), mtime_ns=int(data["mtime_ns"]), hash=str(data["hash"]))


def _sha256_file(path: Path) -> str:
    h = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK), b""):
            h.update(chunk)
    return h.hexdigest()


def _hash_regular_file(path: Path, memo: Optional[Dict[str, FileFingerprint]]) -> str:
    stat = path.stat()
    key = str(path)
    if memo is not None:
        known = memo.get(key)
        if known is not None and known.size == stat.st_size and known.mtime_ns == stat.st_mtime_ns:
            return known.hash

    value = _sha256_file(path)
    if memo is not None:
        memo[key] = FileFingerprint(size=stat.st_size, mtime_ns=stat.st_mtime_ns, hash=value)
    return value


def hash_file(
    path: Union[str, Path],
    *,
    memo: Optional[Dict[str, FileFingerprint]] = None,
) -> Optional[str]:
    """
    Fingerprint do conteúdo de um arquivo ou diretório.

    Args:
        path: caminho do arquivo/diretório.
        memo: memo mutável de fingerprints (atualizado in-place).

    Returns:
        Optional[str]: hash hexadecimal, ou None se o caminho não existe.
    """
    p = Path(path)
    if not p.exists():
        return None

    if p.is_dir():
        h = hashlib.sha256()
        for child in sorted(c for c in p.rglob("*") if c.is_file()):
            rel = child.relative_to(p).as_posix()
            h.update(rel.encode("utf-8"))
            h.update(b"\x00")
            h.update(_hash_regular_file(child, memo).encode("ascii"))
        return h.hexdigest()

    return _hash_regular_file(p, memo)

"""
Cache persistente de targets.

Layout em disco (relativo a `path`):

    values/<target>.joblib   valor do target (joblib)
    meta/<target>.json       metadata da última build (fingerprints, tempos, erro)
    progress/<target>        estado de execução: running | done | failed
    runs/<run_id>.json       manifest de cada chamada de `make`
    files.json               memo de fingerprints de arquivos (size, mtime, hash)

Decisões (v1):
    - Escritas atômicas: arquivo temporário no mesmo diretório + `os.replace`
    - Apenas o processo scheduler escreve no cache
    - Nomes de targets são identificadores Python (seguros como nome de arquivo)

Limites explícitos:
    - Não decide staleness (ver `engine.staleness`)
    - Não executa comandos
"""

from __future__ import annotations

import json
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import joblib

from drakeflow.core.exceptions import CacheCorruptedError, TargetNotCachedError
from drakeflow.core.hashing.files import FileFingerprint


PROGRESS_STATES = ("running", "done", "failed")

_VALUE_SUFFIX = ".joblib"
_META_SUFFIX = ".json"
_TMP_PREFIX = ".tmp-"


def _atomic_write(path: Path, write) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=_TMP_PREFIX, dir=str(path.parent))
    os.close(fd)
    try:
        write(tmp)
        os.replace(tmp, path)
    finally:
        if os.path.exists(tmp):
            os.unlink(tmp)


def _atomic_write_text(path: Path, text: str) -> None:
    def write(tmp: str) -> None:
        Path(tmp).write_text(text, encoding="utf-8")

    _atomic_write(path, write)


class Cache:
    """Store de valores, metadata, progresso e manifests de um projeto."""

    def __init__(self, path: Union[str, Path] = ".drakeflow", *, create: bool = True) -> None:
        """
        Abre o cache em `path`.

        Com `create=False` nenhum diretório é criado: leituras sobre um
        cache inexistente veem um cache vazio e só a primeira escrita
        materializa o layout.
        """
        self.path = Path(path)
        self.values_dir = self.path / "values"
        self.meta_dir = self.path / "meta"
        self.progress_dir = self.path / "progress"
        self.runs_dir = self.path / "runs"
        self.files_path = self.path / "files.json"
        if create:
            for d in (self.values_dir, self.meta_dir, self.progress_dir, self.runs_dir):
                d.mkdir(parents=True, exist_ok=True)

    def __repr__(self) -> str:
        return f"Cache(path={str(self.path)!r})"

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------
    def value_path(self, target: str) -> Path:
        return self.values_dir / f"{target}{_VALUE_SUFFIX}"

    def meta_path(self, target: str) -> Path:
        return self.meta_dir / f"{target}{_META_SUFFIX}"

    def progress_path(self, target: str) -> Path:
        return self.progress_dir / target

    # ------------------------------------------------------------------
    # Valores
    # ------------------------------------------------------------------
    def set_value(self, target: str, value: Any) -> None:
        """Persiste o valor (joblib). Erros de serialização propagam."""
        _atomic_write(self.value_path(target), lambda tmp: joblib.dump(value, tmp))

    def has_value(self, target: str) -> bool:
        return self.value_path(target).exists()

    def get_value(self, target: str) -> Any:
        """
        Carrega o valor de um target.

        Raises:
            TargetNotCachedError: se não existe valor armazenado.
        """
        path = self.value_path(target)
        if not path.exists():
            raise TargetNotCachedError(
                message=f"Target sem valor no cache: {target}",
                details={"target": target, "cache": str(self.path)},
                hint="Execute make() para construir o target.",
            )
        return joblib.load(path)

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------
    def set_meta(self, target: str, meta: Dict[str, Any]) -> None:
        _atomic_write_text(self.meta_path(target), json.dumps(meta, ensure_ascii=False, sort_keys=True, default=str))

    def has_meta(self, target: str) -> bool:
        return self.meta_path(target).exists()

    def get_meta(self, target: str) -> Optional[Dict[str, Any]]:
        """
        Metadata da última build (None se o target nunca foi registrado).

        Raises:
            CacheCorruptedError: se o arquivo existe mas não é JSON válido.
        """
        path = self.meta_path(target)
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise CacheCorruptedError(
                message=f"Metadata ilegível para o target '{target}'",
                details={"target": target, "path": str(path), "error": str(e)},
                hint="Remova o target com clean() e reconstrua.",
            ) from e
        if not isinstance(data, dict):
            raise CacheCorruptedError(
                message=f"Metadata inválida para o target '{target}'",
                details={"target": target, "path": str(path)},
            )
        return data

    # ------------------------------------------------------------------
    # Progresso
    # ------------------------------------------------------------------
    def set_progress(self, target: str, state: str) -> None:
        if state not in PROGRESS_STATES:
            raise ValueError(f"Estado de progresso inválido: {state!r}")
        _atomic_write_text(self.progress_path(target), state)

    def get_progress(self, target: str) -> Optional[str]:
        path = self.progress_path(target)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8").strip() or None

    def progress(self, targets: Optional[Iterable[str]] = None) -> Dict[str, Optional[str]]:
        """Estado de progresso por target (None: nunca iniciado)."""
        if targets is None:
            targets = sorted(p.name for p in self.progress_dir.glob("*") if not p.name.startswith(_TMP_PREFIX))
        return {t: self.get_progress(t) for t in targets}

    def clear_progress(self) -> None:
        for p in self.progress_dir.glob("*"):
            p.unlink()

    # ------------------------------------------------------------------
    # Listagem / remoção
    # ------------------------------------------------------------------
    def list_targets(self) -> List[str]:
        """Targets com valor ou metadata registrados."""
        names = {p.name[: -len(_VALUE_SUFFIX)] for p in self.values_dir.glob(f"*{_VALUE_SUFFIX}")}
        names |= {p.name[: -len(_META_SUFFIX)] for p in self.meta_dir.glob(f"*{_META_SUFFIX}")}
        return sorted(n for n in names if not n.startswith(_TMP_PREFIX))

    def delete(self, target: str) -> bool:
        """Remove valor, metadata e progresso de um target."""
        removed = False
        for path in (self.value_path(target), self.meta_path(target), self.progress_path(target)):
            if path.exists():
                path.unlink()
                removed = True
        return removed

    def clean(self, targets: Optional[Iterable[str]] = None) -> List[str]:
        """Remove os targets indicados (todos, se None). Retorna os removidos."""
        names = self.list_targets() if targets is None else list(targets)
        removed = [t for t in names if self.delete(t)]
        if targets is None:
            self.clear_progress()
        return removed

    def gc(self, keep: Optional[Iterable[str]] = None) -> List[str]:
        """
        Coleta de lixo do armazenamento.

        Remove arquivos temporários abandonados, valores sem metadata e,
        quando `keep` é informado, todos os targets fora de `keep`.

        Returns:
            List[str]: targets removidos.
        """
        for d in (self.values_dir, self.meta_dir, self.progress_dir, self.runs_dir, self.path):
            for p in d.glob(f"{_TMP_PREFIX}*"):
                p.unlink()

        removed: List[str] = []
        keep_set = None if keep is None else set(keep)
        for name in self.list_targets():
            orphan = self.has_value(name) and not self.has_meta(name)
            dropped = keep_set is not None and name not in keep_set
            if orphan or dropped:
                self.delete(name)
                removed.append(name)
        return removed

    def destroy(self) -> None:
        """Remove o diretório inteiro do cache."""
        if self.path.exists():
            shutil.rmtree(self.path)

    # ------------------------------------------------------------------
    # Memo de arquivos
    # ------------------------------------------------------------------
    def load_file_memo(self) -> Dict[str, FileFingerprint]:
        if not self.files_path.exists():
            return {}
        try:
            data = json.loads(self.files_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise CacheCorruptedError(
                message="Memo de arquivos ilegível",
                details={"path": str(self.files_path), "error": str(e)},
                hint="Remova files.json; os arquivos serão re-hasheados.",
            ) from e
        return {k: FileFingerprint.from_dict(v) for k, v in data.items()}

    def save_file_memo(self, memo: Dict[str, FileFingerprint]) -> None:
        data = {k: v.to_dict() for k, v in sorted(memo.items())}
        _atomic_write_text(self.files_path, json.dumps(data, sort_keys=True))

    # ------------------------------------------------------------------
    # Manifests de runs
    # ------------------------------------------------------------------
    def run_path(self, run_id: str) -> Path:
        return self.runs_dir / f"{run_id}.json"

    def save_run_manifest(self, manifest: Any) -> Path:
        """Persiste o manifest de uma run (objeto `RunManifest` ou dict)."""
        data = manifest.to_dict() if hasattr(manifest, "to_dict") else dict(manifest)
        run_id = data["run"]["run_id"]
        path = self.run_path(run_id)
        _atomic_write_text(path, json.dumps(data, ensure_ascii=False, indent=2, sort_keys=True, default=str))
        return path

    def list_runs(self) -> List[str]:
        """run_ids em ordem de início (started_at), do mais antigo ao mais novo."""
        entries = []
        for p in self.runs_dir.glob("*.json"):
            if p.name.startswith(_TMP_PREFIX):
                continue
            data = json.loads(p.read_text(encoding="utf-8"))
            entries.append((data.get("run", {}).get("started_at", ""), p.stem))
        return [run_id for _, run_id in sorted(entries)]

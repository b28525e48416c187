"""
API de alto nível do drakeflow.

Funções de construção (`make`), consulta de staleness (`outdated`,
`missed`, `tracked`, `deps_target`, `deps_profile`), leitura do cache
(`readd`, `loadd`, `cached`, `progress`, `failed`, `running`,
`diagnose`, `build_times`), previsão (`predict_runtime`) e manutenção
(`clean`, `get_cache`, `new_cache`).

Convenções:
    - `envir=None` usa os globals de quem chamou a função
    - `cache` aceita um `Cache`, um caminho ou None (usa `cache.path` dos settings)
    - `config` e overrides nomeados seguem `load_settings`
"""

from __future__ import annotations

import inspect
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, TextIO, Union

import pandas as pd

from drakeflow.core.cache.store import Cache
from drakeflow.core.config.settings import MakeSettings, load_settings
from drakeflow.core.engine.engine import Engine, MakeResult, check_outdated, recorded_value_hash
from drakeflow.core.engine.planner import plan_execution, plan_stages
from drakeflow.core.engine.staleness import current_fingerprint
from drakeflow.core.graph.builder import build_graph
from drakeflow.core.graph.graph import NODE_FILE, NODE_MISSING, DependencyGraph


CacheLike = Union[None, str, Path, Cache]
ConfigLike = Union[None, Mapping[str, Any], str, Path, MakeSettings]


def _caller_globals() -> Dict[str, Any]:
    # frame 0: este helper; 1: função pública; 2: quem chamou a API
    frame = inspect.currentframe()
    try:
        return frame.f_back.f_back.f_globals
    finally:
        del frame


def _cache(cache: CacheLike, settings: Optional[MakeSettings] = None, *, create: bool = False) -> Cache:
    # apenas make() cria o layout em disco; consultas leem um cache ausente como vazio
    if isinstance(cache, Cache):
        return cache
    if cache is None:
        cache = (settings or load_settings()).cache_path
    return Cache(cache, create=create)


# ---------------------------------------------------------------------------
# Construção
# ---------------------------------------------------------------------------

def make(
    plan: pd.DataFrame,
    *,
    envir: Optional[Mapping[str, Any]] = None,
    targets: Optional[Iterable[str]] = None,
    cache: CacheLike = None,
    config: ConfigLike = None,
    echo: Optional[TextIO] = None,
    **overrides: Any,
) -> MakeResult:
    """
    Constrói os targets desatualizados de um plano.

    Args:
        plan: plano (`make_plan`/`bind_plans`).
        envir: nome → objeto usado pelos comandos (default: globals do chamador).
        targets: targets pedidos; seus upstreams também são considerados.
        cache: Cache, caminho do cache ou None (`cache.path` da configuração).
        config: dict, arquivo YAML/JSON ou MakeSettings.
        echo: stream para a saída de `engine.verbose` (default: stdout).
        **overrides: jobs, parallelism, keep_going, seed, memory_strategy,
            retries, verbose, cache_path, joblib_backend.

    Returns:
        MakeResult: status por target; falhas de build não levantam exceção
        (ver `MakeResult.raise_on_failure`).

    Raises:
        PlanValidationError, CycleDetectedError, FileOutputConflictError,
        UnknownTargetError, InvalidSettingError, BackendNotFoundError.
    """
    if envir is None:
        envir = _caller_globals()
    settings = load_settings(config, **overrides)
    engine = Engine(
        plan=plan,
        envir=envir,
        settings=settings,
        cache=_cache(cache, settings, create=True),
        targets=targets,
        echo=echo,
    )
    return engine.run()


# ---------------------------------------------------------------------------
# Consultas sobre o plano
# ---------------------------------------------------------------------------

def outdated(
    plan: pd.DataFrame,
    *,
    envir: Optional[Mapping[str, Any]] = None,
    targets: Optional[Iterable[str]] = None,
    cache: CacheLike = None,
    config: ConfigLike = None,
    **overrides: Any,
) -> List[str]:
    """Targets que `make` reconstruiria, em ordem de execução."""
    if envir is None:
        envir = _caller_globals()
    settings = load_settings(config, **overrides)
    graph = build_graph(plan, envir)
    reasons = check_outdated(graph, cache=_cache(cache, settings), settings=settings, targets=targets)
    return [t for t in plan_execution(graph, targets) if t in reasons]


def missed(plan: pd.DataFrame, *, envir: Optional[Mapping[str, Any]] = None) -> List[str]:
    """Nomes usados pelos comandos que não são targets, imports nem builtins."""
    if envir is None:
        envir = _caller_globals()
    return build_graph(plan, envir).nodes_of_kind(NODE_MISSING)


def tracked(plan: pd.DataFrame, *, envir: Optional[Mapping[str, Any]] = None) -> List[str]:
    """Targets, imports e arquivos rastreados (arquivos pelo caminho)."""
    if envir is None:
        envir = _caller_globals()
    graph = build_graph(plan, envir)
    names = [n for n, node in graph.nodes.items() if node.kind != NODE_MISSING and node.kind != NODE_FILE]
    return sorted(names) + graph.files


def deps_target(target: str, plan: pd.DataFrame, *, envir: Optional[Mapping[str, Any]] = None) -> pd.DataFrame:
    """Dependências diretas de um target: (name, type)."""
    if envir is None:
        envir = _caller_globals()
    return build_graph(plan, envir).deps_target(target)


def deps_profile(
    target: str,
    plan: pd.DataFrame,
    *,
    envir: Optional[Mapping[str, Any]] = None,
    cache: CacheLike = None,
    config: ConfigLike = None,
    **overrides: Any,
) -> pd.DataFrame:
    """
    Compara os fingerprints registrados na última build com os atuais.

    Returns:
        pd.DataFrame: colunas (hash, changed, old, new) com uma linha para
        command, depend, file e seed.
    """
    if envir is None:
        envir = _caller_globals()
    settings = load_settings(config, **overrides)
    store = _cache(cache, settings)
    graph = build_graph(plan, envir)
    graph.require_target(target)

    value_hashes = {dep: recorded_value_hash(store, dep) for dep in graph.target_dependencies(target)}
    memo = store.load_file_memo()
    current = current_fingerprint(graph, target, value_hashes=value_hashes, global_seed=settings.seed, memo=memo)
    meta = store.get_meta(target) or {}

    rows = [
        ("command", meta.get("command_hash"), current.command),
        ("depend", meta.get("depend_hash"), current.depend),
        ("file", meta.get("input_files"), dict(current.input_files)),
        ("seed", meta.get("seed"), current.seed),
    ]
    return pd.DataFrame(
        [{"hash": name, "changed": old != new, "old": old, "new": new} for name, old, new in rows],
        columns=["hash", "changed", "old", "new"],
    )


def dependency_graph(plan: pd.DataFrame, *, envir: Optional[Mapping[str, Any]] = None) -> DependencyGraph:
    """Grafo de dependências do plano (sem construir nada)."""
    if envir is None:
        envir = _caller_globals()
    return build_graph(plan, envir)


# ---------------------------------------------------------------------------
# Leitura do cache
# ---------------------------------------------------------------------------

def readd(target: str, *, cache: CacheLike = None) -> Any:
    """Valor armazenado de um target (TargetNotCachedError se ausente)."""
    return _cache(cache).get_value(target)


def loadd(*targets: str, cache: CacheLike = None, envir: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Carrega valores do cache.

    Sem `targets`, carrega todos os targets com valor. Com `envir`, os
    valores também são atribuídos nesse dicionário.
    """
    store = _cache(cache)
    names = list(targets) or cached(cache=store)
    values = {name: store.get_value(name) for name in names}
    if envir is not None:
        envir.update(values)
    return values


def cached(*, cache: CacheLike = None) -> List[str]:
    """Targets com valor armazenado."""
    store = _cache(cache)
    return [t for t in store.list_targets() if store.has_value(t)]


def progress(*targets: str, cache: CacheLike = None) -> pd.DataFrame:
    """Estado de execução (running, done, failed) por target."""
    store = _cache(cache)
    states = store.progress(list(targets) or None)
    return pd.DataFrame(
        [{"target": t, "progress": s} for t, s in states.items()],
        columns=["target", "progress"],
    )


def failed(*, cache: CacheLike = None) -> List[str]:
    store = _cache(cache)
    return [t for t, s in store.progress().items() if s == "failed"]


def running(*, cache: CacheLike = None) -> List[str]:
    store = _cache(cache)
    return [t for t, s in store.progress().items() if s == "running"]


def diagnose(target: Optional[str] = None, *, cache: CacheLike = None) -> Any:
    """
    Diagnóstico da última build de um target.

    Sem `target`, lista os targets com erro ou warnings registrados. Com
    `target`, retorna dict com status, error, traceback, warnings,
    seconds, attempts e seed.
    """
    store = _cache(cache)
    if target is None:
        out = []
        for name in store.list_targets():
            meta = store.get_meta(name) or {}
            if meta.get("error") or meta.get("warnings"):
                out.append(name)
        return out

    meta = store.get_meta(target)
    if meta is None:
        return {}
    keys = ("status", "error", "traceback", "warnings", "seconds", "attempts", "seed", "built_at", "run_id")
    return {k: meta.get(k) for k in keys}


def build_times(*targets: str, cache: CacheLike = None) -> pd.DataFrame:
    """Duração (segundos) da última build registrada por target."""
    store = _cache(cache)
    names = list(targets) or store.list_targets()
    rows = []
    for name in names:
        meta = store.get_meta(name)
        if meta is None or meta.get("seconds") is None:
            continue
        rows.append({"target": name, "seconds": float(meta["seconds"]), "built_at": meta.get("built_at"), "status": meta.get("status")})
    return pd.DataFrame(rows, columns=["target", "seconds", "built_at", "status"])


def predict_runtime(
    plan: pd.DataFrame,
    *,
    envir: Optional[Mapping[str, Any]] = None,
    targets: Optional[Iterable[str]] = None,
    jobs: int = 1,
    from_scratch: bool = False,
    default_time: float = 0.0,
    cache: CacheLike = None,
    config: ConfigLike = None,
    **overrides: Any,
) -> float:
    """
    Estima a duração (segundos) de `make` com base nos tempos registrados.

    Cada estágio do grafo é empacotado gulosamente (maior primeiro, no
    worker menos carregado) em `jobs` workers; o tempo do estágio é a
    carga do worker mais carregado. Targets atualizados custam zero, a
    menos que `from_scratch`. Targets sem tempo registrado usam
    `default_time`.
    """
    if jobs < 1:
        raise ValueError("jobs deve ser >= 1")
    if envir is None:
        envir = _caller_globals()
    settings = load_settings(config, **overrides)
    store = _cache(cache, settings)
    graph = build_graph(plan, envir)

    if from_scratch:
        pending = set(graph.required_targets(targets))
    else:
        pending = set(check_outdated(graph, cache=store, settings=settings, targets=targets))

    total = 0.0
    for stage in plan_stages(graph, targets):
        times = []
        for t in stage:
            if t not in pending:
                continue
            meta = store.get_meta(t) or {}
            seconds = meta.get("seconds")
            times.append(float(seconds) if seconds is not None else float(default_time))
        loads = [0.0] * jobs
        for seconds in sorted(times, reverse=True):
            loads[loads.index(min(loads))] += seconds
        total += max(loads)
    return total


# ---------------------------------------------------------------------------
# Manutenção
# ---------------------------------------------------------------------------

def clean(*targets: str, cache: CacheLike = None, destroy: bool = False) -> List[str]:
    """
    Remove targets do cache (todos, sem argumentos).

    Com `destroy=True` o diretório inteiro do cache é apagado.
    """
    store = _cache(cache)
    if destroy:
        removed = store.list_targets()
        store.destroy()
        return removed
    return store.clean(list(targets) or None)


def get_cache(path: Union[None, str, Path] = None, *, config: ConfigLike = None) -> Optional[Cache]:
    """Cache existente em `path` (default: `cache.path`), ou None."""
    if path is None:
        path = load_settings(config).cache_path
    if not Path(path).is_dir():
        return None
    return Cache(path, create=False)


def new_cache(path: Union[None, str, Path] = None, *, config: ConfigLike = None) -> Cache:
    """
    Cria um cache novo em `path` (default: `cache.path`).

    Raises:
        FileExistsError: se `path` já existe e não está vazio.
    """
    if path is None:
        path = load_settings(config).cache_path
    p = Path(path)
    if p.exists() and any(p.iterdir()):
        raise FileExistsError(f"Cache já existe em {p}; use get_cache() ou clean(destroy=True)")
    return Cache(p)

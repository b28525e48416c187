"""
Settings efetivos do engine do drakeflow.

Este módulo resolve os settings usados por `make` e pelas consultas da
API a partir de três fontes, em ordem de precedência crescente:

    1. DEFAULT_CONFIG (embutido)
    2. configuração do projeto (dict ou arquivo YAML/JSON)
    3. overrides nomeados (ex.: `make(plan, jobs=4)`)

A resolução usa o mesmo `deep_merge` do loader, portanto conflitos de
tipo continuam sendo erros estruturais.
"""

from __future__ import annotations

from copy import deepcopy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from .errors import InvalidSettingError
from .loader import load_config_file
from .merge import deep_merge


MEMORY_STRATEGIES = ("speed", "autoclean")
TRIGGER_FLAGS = ("command", "depend", "file", "seed", "missing")

DEFAULT_CONFIG: Dict[str, Any] = {
    "cache": {"path": ".drakeflow"},
    "engine": {
        "jobs": 1,
        "parallelism": "loop",
        "keep_going": False,
        "seed": 0,
        "memory_strategy": "speed",
        "retries": 0,
        "verbose": 0,
        "joblib_backend": "loky",
    },
    "trigger": {flag: True for flag in TRIGGER_FLAGS},
    "targets": {},
}

# override nomeado -> (seção, chave)
_OVERRIDE_KEYS = {
    "cache_path": ("cache", "path"),
    "jobs": ("engine", "jobs"),
    "parallelism": ("engine", "parallelism"),
    "keep_going": ("engine", "keep_going"),
    "seed": ("engine", "seed"),
    "memory_strategy": ("engine", "memory_strategy"),
    "retries": ("engine", "retries"),
    "verbose": ("engine", "verbose"),
    "joblib_backend": ("engine", "joblib_backend"),
}


@dataclass(frozen=True)
class MakeSettings:
    """Settings resolvidos e validados de uma run."""

    cache_path: str
    jobs: int
    parallelism: str
    keep_going: bool
    seed: int
    memory_strategy: str
    retries: int
    verbose: int
    joblib_backend: str
    trigger_defaults: Dict[str, bool]
    targets: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    def is_enabled(self, target: str) -> bool:
        target_cfg = self.targets.get(target, {}) or {}
        return bool(target_cfg.get("enabled", True))

    def to_config(self) -> Dict[str, Any]:
        return deepcopy(self.raw)


def _require(condition: bool, message: str) -> None:
    if not condition:
        raise InvalidSettingError(message)


def _validate(cfg: Dict[str, Any]) -> MakeSettings:
    cache_cfg = cfg.get("cache") or {}
    engine = cfg.get("engine") or {}
    trig = cfg.get("trigger") or {}
    targets = cfg.get("targets") or {}

    cache_path = cache_cfg.get("path")
    _require(isinstance(cache_path, str) and cache_path.strip() != "", "cache.path deve ser string não vazia")

    jobs = engine.get("jobs")
    _require(type(jobs) is int and jobs >= 1, f"engine.jobs deve ser inteiro >= 1, recebido: {jobs!r}")

    parallelism = engine.get("parallelism")
    _require(isinstance(parallelism, str) and parallelism.strip() != "", "engine.parallelism deve ser string não vazia")

    seed = engine.get("seed")
    _require(type(seed) is int, f"engine.seed deve ser inteiro, recebido: {seed!r}")

    memory_strategy = engine.get("memory_strategy")
    _require(
        memory_strategy in MEMORY_STRATEGIES,
        f"engine.memory_strategy deve ser um de {MEMORY_STRATEGIES}, recebido: {memory_strategy!r}",
    )

    retries = engine.get("retries")
    _require(type(retries) is int and retries >= 0, f"engine.retries deve ser inteiro >= 0, recebido: {retries!r}")

    verbose = engine.get("verbose")
    _require(type(verbose) is int and verbose >= 0, f"engine.verbose deve ser inteiro >= 0, recebido: {verbose!r}")

    for flag in TRIGGER_FLAGS:
        _require(isinstance(trig.get(flag), bool), f"trigger.{flag} deve ser booleano")
    unknown_flags = sorted(set(trig) - set(TRIGGER_FLAGS))
    _require(not unknown_flags, f"trigger possui chaves desconhecidas: {unknown_flags}")

    _require(isinstance(targets, dict), "targets deve ser um mapeamento nome -> opções")

    return MakeSettings(
        cache_path=cache_path,
        jobs=jobs,
        parallelism=parallelism,
        keep_going=bool(engine.get("keep_going")),
        seed=seed,
        memory_strategy=memory_strategy,
        retries=retries,
        verbose=verbose,
        joblib_backend=str(engine.get("joblib_backend") or "loky"),
        trigger_defaults={flag: bool(trig[flag]) for flag in TRIGGER_FLAGS},
        targets={str(k): dict(v or {}) for k, v in targets.items()},
        raw=cfg,
    )


def load_settings(
    config: Union[None, Mapping[str, Any], str, Path, MakeSettings] = None,
    **overrides: Any,
) -> MakeSettings:
    """
    Resolve os settings efetivos do engine.

    Args:
        config: dict de configuração, caminho de arquivo YAML/JSON,
            `MakeSettings` já resolvido ou None (apenas defaults).
        **overrides: overrides nomeados (`jobs`, `parallelism`, `keep_going`,
            `seed`, `memory_strategy`, `retries`, `verbose`, `cache_path`,
            `joblib_backend`). Valores None são ignorados.

    Returns:
        MakeSettings: settings validados.

    Raises:
        InvalidSettingError: override desconhecido ou valor fora do domínio.
        ConfigTypeConflictError: conflito de tipo durante o merge.
    """
    if isinstance(config, MakeSettings):
        base = config.to_config()
    elif config is None:
        base = deepcopy(DEFAULT_CONFIG)
    else:
        loaded = load_config_file(config) if isinstance(config, (str, Path)) else dict(config)
        base = deep_merge(DEFAULT_CONFIG, loaded)

    unknown = sorted(set(overrides) - set(_OVERRIDE_KEYS))
    if unknown:
        raise InvalidSettingError(f"Settings desconhecidos: {unknown}")

    patch: Dict[str, Any] = {}
    for name, value in overrides.items():
        if value is None:
            continue
        section, key = _OVERRIDE_KEYS[name]
        patch.setdefault(section, {})[key] = value

    effective = deep_merge(base, patch) if patch else base
    return _validate(effective)

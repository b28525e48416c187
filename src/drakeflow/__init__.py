"""
drakeflow — engine de builds reprodutíveis para pipelines de análise de dados.

Um plano declara targets e os comandos Python que os produzem; o drakeflow
descobre as dependências estaticamente, constrói apenas o que está
desatualizado e guarda valores e fingerprints em um cache persistente.

    from drakeflow import file_in, make, make_plan, readd

    plan = make_plan(
        raw="pd.read_csv(file_in('data/raw.csv'))",
        data="clean(raw)",
        model="fit(data)",
    )
    make(plan)
    readd("model")
"""

from drakeflow._version import __version__
from drakeflow.api import (
    build_times,
    cached,
    clean,
    dependency_graph,
    deps_profile,
    deps_target,
    diagnose,
    failed,
    get_cache,
    loadd,
    make,
    missed,
    new_cache,
    outdated,
    predict_runtime,
    progress,
    readd,
    running,
    tracked,
)
from drakeflow.core.analysis import deps_code, file_in, file_out, ignore, no_deps
from drakeflow.core.cache import Cache
from drakeflow.core.config import MakeSettings, load_settings
from drakeflow.core.engine import MakeResult, register_backend
from drakeflow.core.exceptions import DrakeException
from drakeflow.core.pipeline import TargetResult, TargetStatus
from drakeflow.core.plan import bind_plans, combine, cross, make_plan, map_, target, trigger

__all__ = [
    "__version__",
    "build_times",
    "cached",
    "clean",
    "dependency_graph",
    "deps_profile",
    "deps_target",
    "diagnose",
    "failed",
    "get_cache",
    "loadd",
    "make",
    "missed",
    "new_cache",
    "outdated",
    "predict_runtime",
    "progress",
    "readd",
    "running",
    "tracked",
    "deps_code",
    "file_in",
    "file_out",
    "ignore",
    "no_deps",
    "Cache",
    "MakeSettings",
    "load_settings",
    "MakeResult",
    "register_backend",
    "DrakeException",
    "TargetResult",
    "TargetStatus",
    "bind_plans",
    "combine",
    "cross",
    "make_plan",
    "map_",
    "target",
    "trigger",
]

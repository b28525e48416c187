"""
Engine do drakeflow.

    - planner   → ordem topológica determinística e estágios
    - staleness → fingerprints e razões de rebuild
    - worker    → execução isolada de um target (picklable)
    - backends  → loop, threads, processes, staged, register_backend
    - engine    → scheduler, MakeResult, check_outdated
"""

from .backends import available_backends, get_backend, register_backend
from .engine import Engine, MakeResult, check_outdated
from .planner import plan_execution, plan_stages
from .staleness import REASONS, TargetFingerprint, outdated_reasons, should_build
from .worker import BuildOutcome, BuildTask, build_target, evaluate_code

__all__ = [
    "available_backends",
    "get_backend",
    "register_backend",
    "Engine",
    "MakeResult",
    "check_outdated",
    "plan_execution",
    "plan_stages",
    "REASONS",
    "TargetFingerprint",
    "outdated_reasons",
    "should_build",
    "BuildOutcome",
    "BuildTask",
    "build_target",
    "evaluate_code",
]

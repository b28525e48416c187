"""
Modelo de plano do drakeflow.

    - plan       → make_plan, target, validate_plan, bind_plans
    - transforms → map_, cross, combine, expand_plan
    - triggers   → Trigger, trigger
"""

from .plan import PLAN_COLUMNS, PlanRow, TargetSpec, bind_plans, iter_targets, make_plan, target, validate_plan
from .transforms import Combine, Cross, Map, Symbol, combine, cross, expand_plan, map_
from .triggers import TRIGGER_MODES, Trigger, trigger

__all__ = [
    "PLAN_COLUMNS",
    "PlanRow",
    "TargetSpec",
    "bind_plans",
    "iter_targets",
    "make_plan",
    "target",
    "validate_plan",
    "Combine",
    "Cross",
    "Map",
    "Symbol",
    "combine",
    "cross",
    "expand_plan",
    "map_",
    "TRIGGER_MODES",
    "Trigger",
    "trigger",
]

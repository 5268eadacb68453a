"""Evaluation layer - cooldown, procesamiento por regla y scheduler."""

from .cooldown import CooldownTracker, KeyedLock
from .processor import RuleOutcome, RuleProcessor, RuleResult
from .scheduler import (
    CycleReport,
    EvaluationScheduler,
    RuleEvaluationTimeout,
    SchedulerState,
)
from .stats import EngineStats

__all__ = [
    "CooldownTracker",
    "CycleReport",
    "EngineStats",
    "EvaluationScheduler",
    "KeyedLock",
    "RuleEvaluationTimeout",
    "RuleOutcome",
    "RuleProcessor",
    "RuleResult",
    "SchedulerState",
]

"""Workflow evaluation: dotted paths, conditions and the plan executor.

The executor is imported from ``idle_engine.workflow.executor`` directly;
it depends on run state, which itself resolves paths from this package.
"""

from .paths import MISSING, PathResolver
from .conditions import ConditionEvaluator, deep_equals

__all__ = ['MISSING', 'PathResolver', 'ConditionEvaluator', 'deep_equals']

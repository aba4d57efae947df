"""Plan building and plan export."""

from .builder import PlanBuilder
from .export import export_plan, load_plan, read_plan, write_plan, plan_to_document

__all__ = [
    'PlanBuilder',
    'export_plan',
    'load_plan',
    'read_plan',
    'write_plan',
    'plan_to_document',
]

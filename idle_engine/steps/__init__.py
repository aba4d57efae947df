"""Step handler interface, registry and built-in step library."""

from .registry import StepContext, StepHandler, StepOutput, StepRegistry, normalize_output
from .builtin import (
    EmitEventStep,
    CreateIdentityStep,
    EnsureAttributeStep,
    DisableIdentityStep,
    DeleteIdentityStep,
    EnsureEntitlementStep,
    builtin_handlers,
)

__all__ = [
    "StepContext",
    "StepHandler",
    "StepOutput",
    "StepRegistry",
    "normalize_output",
    "EmitEventStep",
    "CreateIdentityStep",
    "EnsureAttributeStep",
    "DisableIdentityStep",
    "DeleteIdentityStep",
    "EnsureEntitlementStep",
    "builtin_handlers",
]

"""
Step registry and the step handler interface.

The host populates the registry explicitly at startup, mapping each step
``Type`` to a handler. Handlers must not keep per-run state: the same
registry may serve concurrent runs.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from ..exceptions import StepExecutionError
from ..models import PlanStep

logger = logging.getLogger(__name__)


@dataclass
class StepOutput:
    """
    What a handler reports back.

    Attributes:
        changed: True if the step modified a target system
        outputs: Values to write below State.<StepName> (keys are relative paths)
    """
    changed: bool = False
    outputs: Dict[str, Any] = field(default_factory=dict)


class StepContext:
    """
    Read-only view of the run handed to a handler for one invocation.

    Attributes:
        plan: Plan metadata (WorkflowName, LifecycleEvent, CorrelationId, Actor)
        request: Request in context form
        state: Snapshot of committed run state
        providers: Provider map (alias -> provider)
        auth_session: Session acquired for the step, or None
    """

    def __init__(
        self,
        plan: Dict[str, Any],
        request: Dict[str, Any],
        state: Dict[str, Any],
        providers: Mapping,
        auth_session: Any = None,
        emit: Optional[Callable[..., Any]] = None,
        step_name: Optional[str] = None,
    ):
        self.plan = plan
        self.request = request
        self.state = state
        self.providers = providers
        self.auth_session = auth_session
        self.step_name = step_name
        self._emit = emit

    def get_provider(self, step: PlanStep) -> Any:
        """
        Resolve the provider bound to a step.

        Raises:
            StepExecutionError: If the alias is not in the provider map
        """
        alias = step.provider
        if alias is None or alias not in self.providers:
            raise StepExecutionError(step.name, f"Provider '{alias}' is not available for step '{step.name}'")
        return self.providers[alias]

    def emit_event(self, message: str, data: Optional[Dict[str, Any]] = None,
                   event_type: str = "Custom") -> None:
        """Emit a Custom or Debug event attributed to the current step."""
        if event_type not in ("Custom", "Debug"):
            raise ValueError("Handlers may only emit 'Custom' or 'Debug' events")
        if self._emit is not None:
            self._emit(event_type, message, self.step_name, data)


class StepHandler(ABC):
    """Single-method interface implemented by every step type."""

    @abstractmethod
    def invoke(self, context: StepContext, step: PlanStep) -> Any:
        """
        Run the step.

        Args:
            context: Per-invocation context
            step: The plan step (``with_`` is a private copy)

        Returns:
            StepOutput, a mapping with 'Changed' and optional 'State', or None

        Raises:
            Exception: Any failure; mark it transient to make it retryable
        """


def normalize_output(result: Any) -> StepOutput:
    """
    Convert a handler's return value into a StepOutput.

    Raises:
        TypeError: If the value has an unsupported shape
    """
    if result is None:
        return StepOutput()
    if isinstance(result, StepOutput):
        return result
    if isinstance(result, Mapping):
        unknown = set(result.keys()) - {'Changed', 'State'}
        if unknown:
            raise TypeError(f"Unsupported handler result keys: {sorted(unknown)}")
        outputs = result.get('State') or {}
        if not isinstance(outputs, Mapping):
            raise TypeError("Handler result 'State' must be a mapping")
        return StepOutput(changed=bool(result.get('Changed', False)), outputs=dict(outputs))
    raise TypeError(f"Unsupported handler result type: {type(result).__name__}")


class StepRegistry:
    """
    Registry for step handlers.

    Maps step type identifiers to handlers and provides lookup.
    """

    def __init__(self, handlers: Optional[Mapping[str, StepHandler]] = None):
        """Initialize registry, optionally with initial handlers."""
        self._handlers: Dict[str, StepHandler] = {}
        for step_type, handler in (handlers or {}).items():
            self.register(step_type, handler)

    @classmethod
    def with_builtin_steps(cls) -> "StepRegistry":
        """Create a registry pre-populated with the built-in step library."""
        from .builtin import builtin_handlers

        return cls(builtin_handlers())

    def register(self, step_type: str, handler: StepHandler) -> None:
        """
        Register a handler for a step type.

        Raises:
            ValueError: If the type is empty or the handler does not implement StepHandler
        """
        if not isinstance(step_type, str) or not step_type.strip():
            raise ValueError("Step type must be a non-empty string")
        if not isinstance(handler, StepHandler):
            raise ValueError(
                f"Handler for '{step_type}' must implement StepHandler, got {type(handler).__name__}"
            )
        self._handlers[step_type] = handler
        logger.debug(f"Registered step handler: {step_type}")

    def get(self, step_type: str) -> Optional[StepHandler]:
        """Get the handler for a step type, or None."""
        return self._handlers.get(step_type)

    def exists(self, step_type: str) -> bool:
        return step_type in self._handlers

    def list_types(self) -> List[str]:
        """List registered step types, sorted."""
        return sorted(self._handlers.keys())

    def __contains__(self, step_type: object) -> bool:
        return step_type in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)

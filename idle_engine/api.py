"""
Public entry points for hosts embedding the engine.

Typical use::

    request = new_lifecycle_request("Joiner", identity_keys={"EmployeeId": "1001"})
    plan = build_plan("joiner.yaml", request, providers={"Identity": provider})
    result = execute_plan(plan)
"""

import logging
import threading
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .exceptions import ValidationError
from .exec.auth import MappingAuthSessionBroker
from .loader import WorkflowLoader
from .models import ExecutionResult, LifecycleRequest, Plan, WorkflowDefinition
from .plan.builder import PlanBuilder, WorkflowSource
from .plan.export import export_plan, load_plan, read_plan, write_plan
from .steps.registry import StepRegistry
from .workflow.executor import PlanExecutor

logger = logging.getLogger(__name__)


def new_lifecycle_request(
    lifecycle_event: str,
    correlation_id: Optional[str] = None,
    actor: Optional[str] = None,
    identity_keys: Optional[Dict[str, Any]] = None,
    desired_state: Optional[Dict[str, Any]] = None,
    changes: Optional[Dict[str, Any]] = None,
) -> LifecycleRequest:
    """
    Create a lifecycle request.

    A correlation id is generated when none is given.

    Raises:
        ValidationError: If the event is empty or a payload is not data-only
    """
    return LifecycleRequest(
        lifecycle_event=lifecycle_event,
        correlation_id=correlation_id or "",
        actor=actor,
        identity_keys=identity_keys or {},
        desired_state=desired_state or {},
        changes=changes,
    )


def validate_workflow(workflow: Union[Mapping, str, Path],
                      lifecycle_event: Optional[str] = None) -> WorkflowDefinition:
    """
    Validate a workflow document without building a plan.

    Args:
        workflow: Workflow mapping or path to a YAML/JSON file
        lifecycle_event: If given, the workflow must declare this event

    Returns:
        The parsed WorkflowDefinition

    Raises:
        ValidationError: With every finding in the document
    """
    loader = WorkflowLoader()
    if isinstance(workflow, (str, Path)):
        definition = loader.load(workflow)
    else:
        definition = loader.load_dict(workflow)

    if lifecycle_event is not None and definition.lifecycle_event != lifecycle_event:
        raise ValidationError.single(
            f"Workflow LifecycleEvent '{definition.lifecycle_event}' does not match '{lifecycle_event}'",
            "LifecycleEvent",
        )
    return definition


def build_plan(
    workflow: WorkflowSource,
    request: LifecycleRequest,
    providers: Optional[Mapping[str, Any]] = None,
    policy: Optional[Mapping[str, Any]] = None,
) -> Plan:
    """
    Build a validated, deterministic plan.

    Raises:
        ValidationError: Malformed workflow, bad templates or conditions, executable content
        CapabilityError: Providers lack capabilities required by steps
    """
    return PlanBuilder().build(workflow, request, providers=providers, policy=policy)


def execute_plan(
    plan: Plan,
    providers: Optional[Mapping[str, Any]] = None,
    step_registry: Optional[StepRegistry] = None,
    options: Any = None,
    event_sink: Any = None,
    auth_session_broker: Any = None,
    what_if: bool = False,
    cancel_event: Optional[threading.Event] = None,
) -> ExecutionResult:
    """
    Execute a plan once.

    Args:
        plan: Plan to execute
        providers: Provider map overriding the plan's
        step_registry: Step handlers (defaults to the built-in step library)
        options: ExecutionOptions or their mapping form
        event_sink: Host object exposing write_event(event)
        auth_session_broker: Host object exposing acquire_auth_session(name, options)
        what_if: Preview without invoking any handler
        cancel_event: Set to abort retry waits

    Returns:
        ExecutionResult
    """
    registry = step_registry if step_registry is not None else StepRegistry.with_builtin_steps()
    executor = PlanExecutor(registry, options)
    return executor.execute(
        plan,
        providers=providers,
        event_sink=event_sink,
        auth_session_broker=auth_session_broker,
        what_if=what_if,
        cancel_event=cancel_event,
    )


def new_auth_session_broker(sessions: Optional[Mapping[str, Any]] = None,
                            default: Any = None) -> MappingAuthSessionBroker:
    """Create a broker serving pre-created sessions by name."""
    return MappingAuthSessionBroker(sessions, default)


__all__ = [
    'new_lifecycle_request',
    'validate_workflow',
    'build_plan',
    'execute_plan',
    'new_auth_session_broker',
    'export_plan',
    'write_plan',
    'load_plan',
    'read_plan',
]

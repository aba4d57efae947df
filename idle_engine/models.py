"""Data model for lifecycle requests, workflows, plans and execution results.

Workflow documents, plan exports and results use the PascalCase key spelling
of the workflow DSL; Python attributes are snake_case.
"""

import copy
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Mapping, Optional, Tuple

from .exceptions import ValidationError, ValidationFinding
from .security.data_only import assert_no_executable_content


StepStatus = Literal["Completed", "Skipped", "Failed"]
RunStatus = Literal["Completed", "Failed", "WhatIf"]
OnFailureStatus = Literal["NotRun", "Completed", "PartiallyFailed"]
EventType = Literal[
    "RunStarted", "RunCompleted", "StepStarted", "StepCompleted",
    "StepSkipped", "StepFailed", "Custom", "Debug",
]

EVENT_TYPES = (
    "RunStarted", "RunCompleted", "StepStarted", "StepCompleted",
    "StepSkipped", "StepFailed", "Custom", "Debug",
)


def utc_timestamp() -> str:
    """Current UTC time in ISO-8601 with a Z suffix."""
    return datetime.now(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')


@dataclass(frozen=True)
class LifecycleRequest:
    """A single identity lifecycle operation requested by the host."""
    lifecycle_event: str
    correlation_id: str = ""
    actor: Optional[str] = None
    identity_keys: Dict[str, Any] = field(default_factory=dict)
    desired_state: Dict[str, Any] = field(default_factory=dict)
    changes: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        errors = []
        if not isinstance(self.lifecycle_event, str) or not self.lifecycle_event.strip():
            errors.append(ValidationFinding("LifecycleEvent must be a non-empty string", "LifecycleEvent"))
        for name in ('identity_keys', 'desired_state'):
            if not isinstance(getattr(self, name), Mapping):
                errors.append(ValidationFinding("must be a mapping", name))
        if self.changes is not None and not isinstance(self.changes, Mapping):
            errors.append(ValidationFinding("must be a mapping", 'changes'))
        if errors:
            raise ValidationError(errors)

        for name in ('identity_keys', 'desired_state', 'changes'):
            assert_no_executable_content(getattr(self, name), f"Request.{name}")

        # Frozen dataclass: bypass __setattr__ to own private copies
        object.__setattr__(self, 'identity_keys', copy.deepcopy(dict(self.identity_keys)))
        object.__setattr__(self, 'desired_state', copy.deepcopy(dict(self.desired_state)))
        if self.changes is not None:
            object.__setattr__(self, 'changes', copy.deepcopy(dict(self.changes)))
        if not self.correlation_id:
            object.__setattr__(self, 'correlation_id', str(uuid.uuid4()))

    def to_context(self) -> Dict[str, Any]:
        """Context form used by templates and conditions (Request.* root)."""
        return {
            "LifecycleEvent": self.lifecycle_event,
            "CorrelationId": self.correlation_id,
            "Actor": self.actor,
            "IdentityKeys": copy.deepcopy(self.identity_keys),
            "DesiredState": copy.deepcopy(self.desired_state),
            "Input": copy.deepcopy(self.desired_state),
            "Changes": copy.deepcopy(self.changes),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LifecycleRequest":
        """Create a request from its PascalCase mapping form."""
        desired = data.get("DesiredState")
        if desired is None:
            desired = data.get("Input") or {}
        return cls(
            lifecycle_event=data.get("LifecycleEvent", ""),
            correlation_id=data.get("CorrelationId") or "",
            actor=data.get("Actor"),
            identity_keys=data.get("IdentityKeys") or {},
            desired_state=desired,
            changes=data.get("Changes"),
        )


@dataclass(frozen=True)
class StepDefinition:
    """A single declarative step as written in the workflow document."""
    name: str
    type: str
    with_: Dict[str, Any] = field(default_factory=dict)
    condition: Optional[Dict[str, Any]] = None
    requires_capabilities: Optional[Tuple[str, ...]] = None
    retry_profile: Optional[str] = None
    description: Optional[str] = None


@dataclass(frozen=True)
class WorkflowDefinition:
    """Validated, data-only workflow definition."""
    name: str
    lifecycle_event: str
    steps: Tuple[StepDefinition, ...]
    on_failure_steps: Tuple[StepDefinition, ...] = ()
    description: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert back to the workflow document form."""
        def step_dict(step: StepDefinition) -> Dict[str, Any]:
            result: Dict[str, Any] = {"Name": step.name, "Type": step.type}
            if step.with_:
                result["With"] = copy.deepcopy(step.with_)
            if step.condition is not None:
                result["Condition"] = copy.deepcopy(step.condition)
            if step.requires_capabilities is not None:
                result["RequiresCapabilities"] = list(step.requires_capabilities)
            if step.retry_profile:
                result["RetryProfile"] = step.retry_profile
            if step.description:
                result["Description"] = step.description
            return result

        document: Dict[str, Any] = {
            "Name": self.name,
            "LifecycleEvent": self.lifecycle_event,
            "Steps": [step_dict(s) for s in self.steps],
        }
        if self.description:
            document["Description"] = self.description
        if self.on_failure_steps:
            document["OnFailureSteps"] = [step_dict(s) for s in self.on_failure_steps]
        return document


@dataclass(frozen=True)
class PlanStep:
    """A step with templates resolved and its provider binding validated."""
    name: str
    type: str
    with_: Dict[str, Any] = field(default_factory=dict)
    condition: Optional[Dict[str, Any]] = None
    requires_capabilities: Tuple[str, ...] = ()
    provider: Optional[str] = None
    retry_profile: Optional[str] = None
    auth_session_name: Optional[str] = None
    auth_session_options: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "Name": self.name,
            "Type": self.type,
            "With": copy.deepcopy(self.with_),
            "Condition": copy.deepcopy(self.condition),
            "RequiresCapabilities": list(self.requires_capabilities),
            "Provider": self.provider,
            "RetryProfile": self.retry_profile,
            "AuthSessionName": self.auth_session_name,
            "AuthSessionOptions": copy.deepcopy(self.auth_session_options),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PlanStep":
        return cls(
            name=data["Name"],
            type=data["Type"],
            with_=copy.deepcopy(data.get("With") or {}),
            condition=copy.deepcopy(data.get("Condition")),
            requires_capabilities=tuple(data.get("RequiresCapabilities") or ()),
            provider=data.get("Provider"),
            retry_profile=data.get("RetryProfile"),
            auth_session_name=data.get("AuthSessionName"),
            auth_session_options=copy.deepcopy(data.get("AuthSessionOptions") or {}),
        )


@dataclass(frozen=True)
class Plan:
    """Immutable, validated plan built once per request.

    ``providers`` is the map used for capability validation; it is not part
    of plan equality and is never exported.
    """
    workflow_name: str
    lifecycle_event: str
    correlation_id: str
    actor: Optional[str]
    request: Dict[str, Any]
    steps: Tuple[PlanStep, ...]
    on_failure_steps: Tuple[PlanStep, ...] = ()
    providers: Optional[Mapping[str, Any]] = field(default=None, compare=False, repr=False)

    def metadata(self) -> Dict[str, Any]:
        """Plan.* root used by conditions and templates."""
        return {
            "WorkflowName": self.workflow_name,
            "LifecycleEvent": self.lifecycle_event,
            "CorrelationId": self.correlation_id,
            "Actor": self.actor,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "WorkflowName": self.workflow_name,
            "LifecycleEvent": self.lifecycle_event,
            "CorrelationId": self.correlation_id,
            "Actor": self.actor,
            "Request": copy.deepcopy(self.request),
            "Steps": [s.to_dict() for s in self.steps],
            "OnFailureSteps": [s.to_dict() for s in self.on_failure_steps],
        }


@dataclass
class StepResult:
    """Outcome of a single step in one run."""
    name: str
    type: str
    status: StepStatus
    changed: Optional[bool] = None
    error: Optional[str] = None
    attempts: int = 0
    outputs: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict, omitting None values."""
        result: Dict[str, Any] = {
            "Name": self.name,
            "Type": self.type,
            "Status": self.status,
            "Attempts": self.attempts,
        }
        if self.changed is not None:
            result["Changed"] = self.changed
        if self.error is not None:
            result["Error"] = self.error
        if self.outputs:
            result["Outputs"] = copy.deepcopy(self.outputs)
        return result


@dataclass
class Event:
    """Structured engine event."""
    type: str
    message: str
    step_name: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
    timestamp_utc: str = field(default_factory=utc_timestamp)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "Type": self.type,
            "Message": self.message,
            "StepName": self.step_name,
            "Data": copy.deepcopy(self.data),
            "TimestampUtc": self.timestamp_utc,
        }


@dataclass
class OnFailureResult:
    """Outcome of the OnFailure phase."""
    status: OnFailureStatus = "NotRun"
    steps: List[StepResult] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"Status": self.status, "Steps": [s.to_dict() for s in self.steps]}


@dataclass
class ExecutionResult:
    """Result of executing a plan once."""
    status: RunStatus
    correlation_id: str
    actor: Optional[str] = None
    steps: List[StepResult] = field(default_factory=list)
    on_failure: OnFailureResult = field(default_factory=OnFailureResult)
    events: List[Event] = field(default_factory=list)
    state: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "Status": self.status,
            "CorrelationId": self.correlation_id,
            "Actor": self.actor,
            "Steps": [s.to_dict() for s in self.steps],
            "OnFailure": self.on_failure.to_dict(),
            "Events": [e.to_dict() for e in self.events],
        }

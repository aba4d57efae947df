"""IdLE engine exceptions."""

from typing import List, Optional
from dataclasses import dataclass


@dataclass
class ValidationFinding:
    """Single validation finding."""
    message: str
    path: str = ""

    def __str__(self) -> str:
        if self.path:
            return f"{self.path}: {self.message}"
        return self.message


@dataclass
class CapabilityFinding:
    """A capability required by a step that its provider does not advertise."""
    step_name: str
    capability: str
    provider: Optional[str] = None

    def __str__(self) -> str:
        return (
            f"Step '{self.step_name}' requires capability '{self.capability}' "
            f"which provider '{self.provider}' does not advertise"
        )


class IdleError(Exception):
    """Base exception for the IdLE engine."""
    pass


class ValidationError(IdleError):
    """Raised when a workflow, request, plan or option payload is invalid.

    The loader and the plan builder accumulate every finding before raising,
    so callers see one complete report instead of the first problem only.
    """

    def __init__(self, errors: List[ValidationFinding]):
        self.errors = list(errors)

        messages = []
        for error in self.errors:
            messages.append(f"Validation error: {error}")

        super().__init__("\n".join(messages))

    @classmethod
    def single(cls, message: str, path: str = "") -> "ValidationError":
        return cls([ValidationFinding(message, path)])


class SecurityViolation(ValidationError):
    """Raised when executable content is found inside data-only input."""
    pass


class CapabilityError(IdleError):
    """Raised at plan-build time when providers lack required capabilities.

    Carries every missing-capability finding across all steps.
    """

    def __init__(self, findings: List[CapabilityFinding]):
        self.findings = list(findings)
        super().__init__("\n".join(f"Capability error: {finding}" for finding in self.findings))


class StepExecutionError(IdleError):
    """A primary step failed after its retry policy was exhausted."""

    def __init__(self, step_name: str, message: str):
        self.step_name = step_name
        super().__init__(message)


class OnFailureStepError(StepExecutionError):
    """An OnFailure step failed. Recorded, never aborts the OnFailure phase."""
    pass


class TransientError(IdleError):
    """Provider-classified retryable failure (throttling, timeouts, ...)."""

    transient = True


class AuthSessionError(IdleError):
    """Raised when an auth session cannot be acquired for a step."""
    pass

"""
Built-in step library.

Each step reads its parameters from ``With`` and calls the capability-backed
operation of its provider. Steps are idempotent as long as the provider
operations are.
"""

from collections.abc import Mapping
from typing import Any, Dict

from ..models import PlanStep
from ..providers.types import Entitlement, result_changed
from .registry import StepContext, StepHandler, StepOutput


def _require(step: PlanStep, key: str) -> Any:
    value = step.with_.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValueError(f"Step '{step.name}' ({step.type}) requires With.{key}")
    return value


class EmitEventStep(StepHandler):
    """IdLE.Step.EmitEvent: emit a Custom event with a message and optional data."""

    def invoke(self, context: StepContext, step: PlanStep) -> StepOutput:
        message = _require(step, 'Message')
        data = step.with_.get('Data')
        if data is not None and not isinstance(data, Mapping):
            raise ValueError(f"Step '{step.name}': With.Data must be a mapping")
        context.emit_event(str(message), dict(data) if data else None)
        return StepOutput(changed=False)


class CreateIdentityStep(StepHandler):
    """IdLE.Step.CreateIdentity: create the identity if it does not exist."""

    def invoke(self, context: StepContext, step: PlanStep) -> StepOutput:
        identity_key = _require(step, 'IdentityKey')
        attributes = step.with_.get('Attributes') or {}
        if not isinstance(attributes, Mapping):
            raise ValueError(f"Step '{step.name}': With.Attributes must be a mapping")

        provider = context.get_provider(step)
        result = provider.create_identity(identity_key, dict(attributes),
                                          auth_session=context.auth_session)
        return StepOutput(changed=result_changed(result), outputs={'IdentityKey': identity_key})


class EnsureAttributeStep(StepHandler):
    """IdLE.Step.EnsureAttribute: converge a single attribute to the desired value."""

    def invoke(self, context: StepContext, step: PlanStep) -> StepOutput:
        identity_key = _require(step, 'IdentityKey')
        name = _require(step, 'Name')
        if 'Value' not in step.with_:
            raise ValueError(f"Step '{step.name}' ({step.type}) requires With.Value")

        provider = context.get_provider(step)
        result = provider.ensure_attribute(identity_key, name, step.with_['Value'],
                                           auth_session=context.auth_session)
        return StepOutput(changed=result_changed(result))


class DisableIdentityStep(StepHandler):
    """IdLE.Step.DisableIdentity"""

    def invoke(self, context: StepContext, step: PlanStep) -> StepOutput:
        identity_key = _require(step, 'IdentityKey')
        provider = context.get_provider(step)
        result = provider.disable_identity(identity_key, auth_session=context.auth_session)
        return StepOutput(changed=result_changed(result))


class DeleteIdentityStep(StepHandler):
    """IdLE.Step.DeleteIdentity"""

    def invoke(self, context: StepContext, step: PlanStep) -> StepOutput:
        identity_key = _require(step, 'IdentityKey')
        provider = context.get_provider(step)
        result = provider.delete_identity(identity_key, auth_session=context.auth_session)
        return StepOutput(changed=result_changed(result))


class EnsureEntitlementStep(StepHandler):
    """
    IdLE.Step.EnsureEntitlement: make an entitlement Present (default) or Absent.

    Lists current entitlements first and only grants or revokes when needed.
    """

    STATES = ('Present', 'Absent')

    def invoke(self, context: StepContext, step: PlanStep) -> StepOutput:
        identity_key = _require(step, 'IdentityKey')
        entitlement = Entitlement.from_dict(_require(step, 'Entitlement'))
        desired = step.with_.get('State', 'Present')
        if desired not in self.STATES:
            raise ValueError(f"Step '{step.name}': With.State must be one of {list(self.STATES)}")

        provider = context.get_provider(step)
        session = context.auth_session
        current = provider.list_entitlements(identity_key, auth_session=session) or []
        assigned = any(
            e.kind == entitlement.kind and e.id.lower() == entitlement.id.lower()
            for e in current
        )

        if desired == 'Present' and not assigned:
            result = provider.grant_entitlement(identity_key, entitlement, auth_session=session)
            return StepOutput(changed=result_changed(result))
        if desired == 'Absent' and assigned:
            result = provider.revoke_entitlement(identity_key, entitlement, auth_session=session)
            return StepOutput(changed=result_changed(result))
        return StepOutput(changed=False)


def builtin_handlers() -> Dict[str, StepHandler]:
    """Built-in step types and their handlers."""
    return {
        "IdLE.Step.EmitEvent": EmitEventStep(),
        "IdLE.Step.CreateIdentity": CreateIdentityStep(),
        "IdLE.Step.EnsureAttribute": EnsureAttributeStep(),
        "IdLE.Step.DisableIdentity": DisableIdentityStep(),
        "IdLE.Step.DeleteIdentity": DeleteIdentityStep(),
        "IdLE.Step.EnsureEntitlement": EnsureEntitlementStep(),
    }

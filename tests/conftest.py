"""Shared fixtures for engine tests."""

import pytest

from idle_engine.models import LifecycleRequest
from idle_engine.providers.mock import MockIdentityProvider


class RecordingSink:
    """Event sink that keeps every event it receives."""

    def __init__(self):
        self.events = []

    def write_event(self, event):
        self.events.append(event)


def joiner_workflow(**overrides):
    """Minimal Joiner workflow document used across tests."""
    workflow = {
        "Name": "Joiner - Standard",
        "LifecycleEvent": "Joiner",
        "Steps": [
            {
                "Name": "CreateAccount",
                "Type": "IdLE.Step.CreateIdentity",
                "With": {
                    "IdentityKey": "{{Request.IdentityKeys.EmployeeId}}",
                    "Attributes": {"Department": "{{Request.DesiredState.Department}}"},
                },
            },
            {
                "Name": "SetTitle",
                "Type": "IdLE.Step.EnsureAttribute",
                "With": {
                    "IdentityKey": "{{Request.IdentityKeys.EmployeeId}}",
                    "Name": "Title",
                    "Value": "{{Request.DesiredState.Title}}",
                },
            },
        ],
    }
    workflow.update(overrides)
    return workflow


@pytest.fixture
def joiner_request():
    return LifecycleRequest(
        lifecycle_event="Joiner",
        correlation_id="corr-0001",
        actor="hr-system",
        identity_keys={"EmployeeId": "1001"},
        desired_state={"Department": "IT", "Title": "Engineer"},
    )


@pytest.fixture
def provider():
    return MockIdentityProvider()


@pytest.fixture
def sink():
    return RecordingSink()

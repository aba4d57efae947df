"""Tests for the public entry points and logging setup."""

import logging
import uuid

import pytest
import yaml

from conftest import RecordingSink, joiner_workflow
from idle_engine.api import (
    build_plan,
    execute_plan,
    export_plan,
    load_plan,
    new_auth_session_broker,
    new_lifecycle_request,
    validate_workflow,
)
from idle_engine.exceptions import SecurityViolation, ValidationError
from idle_engine.logging_setup import configure_logging
from idle_engine.providers.mock import MockIdentityProvider
from idle_engine.security.redaction import RedactingFilter


class TestLifecycleRequest:

    def test_generates_correlation_id(self):
        request = new_lifecycle_request("Joiner")
        assert uuid.UUID(request.correlation_id)
        assert request.identity_keys == {}

    def test_keeps_given_values_and_copies_payloads(self):
        keys = {"EmployeeId": "1001"}
        request = new_lifecycle_request("Mover", correlation_id="c-1", actor="hr",
                                        identity_keys=keys, changes={"Department": ["IT", "HR"]})
        keys["EmployeeId"] = "changed"

        context = request.to_context()
        assert context["CorrelationId"] == "c-1"
        assert context["IdentityKeys"] == {"EmployeeId": "1001"}
        assert context["Changes"] == {"Department": ["IT", "HR"]}
        assert context["Input"] == context["DesiredState"]

    def test_empty_event_rejected(self):
        with pytest.raises(ValidationError):
            new_lifecycle_request("  ")

    def test_executable_payload_rejected(self):
        with pytest.raises(SecurityViolation):
            new_lifecycle_request("Joiner", desired_state={"Compute": lambda: "x"})


class TestValidateWorkflow:

    def test_valid_file(self, tmp_path):
        path = tmp_path / "joiner.yaml"
        path.write_text(yaml.safe_dump(joiner_workflow()), encoding='utf-8')
        assert validate_workflow(path).name == "Joiner - Standard"

    def test_event_mismatch(self):
        with pytest.raises(ValidationError):
            validate_workflow(joiner_workflow(), lifecycle_event="Leaver")

    def test_invalid_document(self):
        with pytest.raises(ValidationError):
            validate_workflow({"Name": "x"})


class TestEndToEnd:

    def test_build_export_reload_execute(self):
        provider = MockIdentityProvider()
        request = new_lifecycle_request(
            "Joiner", actor="hr",
            identity_keys={"EmployeeId": "2002"},
            desired_state={"Department": "Finance", "Title": "Analyst"},
        )
        plan = build_plan(joiner_workflow(), request, providers={"Identity": provider})
        reloaded = load_plan(export_plan(plan))
        sink = RecordingSink()

        result = execute_plan(reloaded, providers={"Identity": provider}, event_sink=sink)

        assert result.status == "Completed"
        assert provider.get_identity("2002")["Attributes"] == {"Department": "Finance", "Title": "Analyst"}
        assert sink.events[0].type == "RunStarted"
        assert result.to_dict()["CorrelationId"] == request.correlation_id

    def test_what_if(self):
        provider = MockIdentityProvider()
        request = new_lifecycle_request("Joiner", identity_keys={"EmployeeId": "3003"},
                                        desired_state={"Department": "IT", "Title": "x"})
        plan = build_plan(joiner_workflow(), request, providers={"Identity": provider})

        result = execute_plan(plan, what_if=True)

        assert result.status == "WhatIf"
        assert provider.get_identity("3003") is None

    def test_auth_session_broker_helper(self):
        broker = new_auth_session_broker({"AD": "session"})
        assert broker.acquire_auth_session("AD", {}) == "session"


class TestConfigureLogging:

    def test_redacting_filter_installed(self):
        root = logging.getLogger()
        handler = logging.StreamHandler()
        root.addHandler(handler)
        try:
            redactor = configure_logging("debug")
            assert any(isinstance(f, RedactingFilter) for f in handler.filters)
            assert logging.getLogger('idle_engine').level == logging.DEBUG

            configure_logging("warn", redactor)
            assert sum(isinstance(f, RedactingFilter) for f in handler.filters) == 1
            assert logging.getLogger('idle_engine').level == logging.WARNING
        finally:
            root.removeHandler(handler)
            logging.getLogger('idle_engine').setLevel(logging.NOTSET)

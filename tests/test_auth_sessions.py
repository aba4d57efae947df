"""Tests for auth session brokering."""

from unittest.mock import Mock

import pytest

from idle_engine.exceptions import AuthSessionError, SecurityViolation
from idle_engine.exec.auth import AuthSessionAdapter, MappingAuthSessionBroker
from idle_engine.security.redaction import Redactor


class TestAuthSessionAdapter:

    def test_acquire_passes_name_and_options(self):
        session = object()
        broker = Mock()
        broker.acquire_auth_session.return_value = session
        adapter = AuthSessionAdapter(broker, correlation_id="c-1", actor="hr")

        assert adapter.acquire("AD", {"Role": "Tier0"}) is session
        broker.acquire_auth_session.assert_called_once_with("AD", {"Role": "Tier0"})

    def test_options_default_to_empty_mapping(self):
        broker = Mock()
        AuthSessionAdapter(broker).acquire("AD")
        broker.acquire_auth_session.assert_called_once_with("AD", {})

    def test_options_are_copied(self):
        options = {"Scopes": ["a"]}
        broker = Mock()
        broker.acquire_auth_session.side_effect = lambda name, opts: opts["Scopes"].append("b")
        with pytest.raises(AuthSessionError):
            # Broker returned None
            AuthSessionAdapter(broker).acquire("AD", options)
        assert options == {"Scopes": ["a"]}

    def test_no_broker_is_actionable_error(self):
        with pytest.raises(AuthSessionError) as exc_info:
            AuthSessionAdapter(None).acquire("AD")
        assert "auth_session_broker" in str(exc_info.value)

    def test_broker_without_method(self):
        with pytest.raises(AuthSessionError):
            AuthSessionAdapter(object()).acquire("AD")

    def test_executable_options_rejected(self):
        broker = Mock()
        with pytest.raises(SecurityViolation):
            AuthSessionAdapter(broker).acquire("AD", {"Factory": lambda: "session"})
        broker.acquire_auth_session.assert_not_called()

    def test_string_session_registered_for_redaction(self):
        redactor = Redactor()
        broker = MappingAuthSessionBroker({"Graph": "eyJ0eXAiOiJKV1Qi.secret-token"})
        AuthSessionAdapter(broker, redactor=redactor).acquire("Graph")

        assert "secret-token" not in redactor.redact_text("auth eyJ0eXAiOiJKV1Qi.secret-token failed")


class TestMappingAuthSessionBroker:

    def setup_method(self):
        self.broker = MappingAuthSessionBroker({"AD": "ad-session"}, default="fallback")
        self.broker.add("AD", "ad-tier0", options={"Role": "Tier0"})

    def test_lookup_by_name(self):
        assert self.broker.acquire_auth_session("AD", {}) == "ad-session"

    def test_lookup_by_options(self):
        assert self.broker.acquire_auth_session("AD", {"Role": "Tier0"}) == "ad-tier0"
        assert self.broker.acquire_auth_session("AD", {"Role": "Other"}) == "ad-session"

    def test_default_session(self):
        assert self.broker.acquire_auth_session("Exchange", {}) == "fallback"

    def test_no_match_without_default(self):
        broker = MappingAuthSessionBroker({"AD": "ad-session"})
        with pytest.raises(AuthSessionError):
            broker.acquire_auth_session("Exchange", {})

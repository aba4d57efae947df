"""
Auth session brokering.

The engine never authenticates. Steps that declare ``AuthSessionName`` get a
session from the host-supplied broker; the session is opaque and handed to
the step unchanged.
"""

import copy
import json
import logging
from collections.abc import Mapping
from typing import Any, Dict, Optional

from ..exceptions import AuthSessionError
from ..security.data_only import assert_no_executable_content
from ..security.redaction import Redactor

logger = logging.getLogger(__name__)


class AuthSessionAdapter:
    """Routes (name, options) requests of one run to the host broker."""

    def __init__(
        self,
        broker: Any = None,
        correlation_id: Optional[str] = None,
        actor: Optional[str] = None,
        redactor: Optional[Redactor] = None,
    ):
        """
        Initialize the adapter.

        Args:
            broker: Host object exposing acquire_auth_session(name, options), or None
            correlation_id: Correlation id of the current run (used for logging)
            actor: Actor of the current run (used for logging)
            redactor: Run redactor; session values are registered for masking
        """
        self.broker = broker
        self.correlation_id = correlation_id
        self.actor = actor
        self.redactor = redactor

    def acquire(self, name: str, options: Optional[Mapping[str, Any]] = None) -> Any:
        """
        Acquire a session.

        Args:
            name: Session name declared by the step
            options: Data-only options (defaults to an empty mapping)

        Returns:
            The broker's session object, unchanged

        Raises:
            SecurityViolation: If options contain executable content
            AuthSessionError: If no broker is configured or the broker fails
        """
        options = {} if options is None else options
        if not isinstance(options, Mapping):
            raise AuthSessionError(f"Auth session options for '{name}' must be a mapping")
        assert_no_executable_content(options, "AuthSessionOptions")

        if self.broker is None:
            raise AuthSessionError(
                f"Auth session '{name}' was requested but no AuthSessionBroker was provided. "
                f"Pass auth_session_broker to execute(), or remove AuthSessionName from the step."
            )

        acquire = getattr(self.broker, 'acquire_auth_session', None)
        if not callable(acquire):
            raise AuthSessionError(
                f"AuthSessionBroker {type(self.broker).__name__} does not implement acquire_auth_session"
            )

        logger.debug(f"Acquiring auth session '{name}' (correlation id {self.correlation_id}, "
                     f"actor {self.actor})")
        session = acquire(name, copy.deepcopy(dict(options)))
        if session is None:
            raise AuthSessionError(f"AuthSessionBroker returned no session for '{name}'")

        if self.redactor is not None:
            self.redactor.remember(session)
        return session


class MappingAuthSessionBroker:
    """
    Simple broker backed by pre-created sessions.

    Sessions are keyed by name, optionally refined by an options fingerprint
    (for example ``{"Role": "Tier0"}``). A default session may serve any
    request that has no specific match.
    """

    def __init__(self, sessions: Optional[Mapping[str, Any]] = None, default: Any = None):
        """
        Initialize broker.

        Args:
            sessions: Mapping of session name -> session
            default: Session returned when nothing more specific matches
        """
        self._sessions: Dict[str, Any] = dict(sessions or {})
        self._by_options: Dict[tuple, Any] = {}
        self.default = default

    def add(self, name: str, session: Any, options: Optional[Mapping[str, Any]] = None) -> None:
        """Register a session for a name and, optionally, exact options."""
        if options:
            self._by_options[(name, self._fingerprint(options))] = session
        else:
            self._sessions[name] = session

    def acquire_auth_session(self, name: str, options: Mapping[str, Any]) -> Any:
        if options:
            key = (name, self._fingerprint(options))
            if key in self._by_options:
                return self._by_options[key]
        if name in self._sessions:
            return self._sessions[name]
        if self.default is not None:
            return self.default
        raise AuthSessionError(f"No auth session configured for '{name}'")

    @staticmethod
    def _fingerprint(options: Mapping[str, Any]) -> str:
        return json.dumps(options, sort_keys=True, default=str)

"""
In-memory identity provider.

Useful for tests, demos and plan previews. Every operation is idempotent:
repeating it against an unchanged store reports ``changed=False``.
"""

import copy
import logging
import threading
from typing import Any, Dict, Iterable, List, Optional

from .types import Entitlement, IdentityProvider, ProviderResult

logger = logging.getLogger(__name__)

MOCK_CAPABILITIES = (
    "IdLE.Identity.Read",
    "IdLE.Identity.Create",
    "IdLE.Identity.Attribute.Ensure",
    "IdLE.Identity.Disable",
    "IdLE.Identity.Delete",
    "IdLE.Entitlement.List",
    "IdLE.Entitlement.Grant",
    "IdLE.Entitlement.Revoke",
)


class MockIdentityProvider(IdentityProvider):
    """Identity store kept in memory; safe for concurrent runs."""

    def __init__(self, identities: Optional[Dict[str, Dict[str, Any]]] = None,
                 capabilities: Optional[Iterable[str]] = None):
        """
        Initialize the provider.

        Args:
            identities: Initial store: identity key -> attributes
            capabilities: Capabilities to advertise (defaults to all)
        """
        self._lock = threading.Lock()
        self._identities: Dict[str, Dict[str, Any]] = {}
        self._entitlements: Dict[str, List[Entitlement]] = {}
        for key, attributes in (identities or {}).items():
            self._identities[key] = {'Attributes': copy.deepcopy(attributes), 'Enabled': True}
            self._entitlements[key] = []
        self._capabilities = list(MOCK_CAPABILITIES if capabilities is None else capabilities)

    def get_capabilities(self) -> List[str]:
        return list(self._capabilities)

    def get_identity(self, identity_key: str, auth_session: Any = None) -> Optional[Dict[str, Any]]:
        with self._lock:
            identity = self._identities.get(identity_key)
            if identity is None:
                return None
            return {
                'IdentityKey': identity_key,
                'Enabled': identity['Enabled'],
                'Attributes': copy.deepcopy(identity['Attributes']),
            }

    def create_identity(self, identity_key: str, attributes: Dict[str, Any],
                        auth_session: Any = None) -> ProviderResult:
        with self._lock:
            if identity_key in self._identities:
                return ProviderResult(changed=False)
            self._identities[identity_key] = {'Attributes': copy.deepcopy(dict(attributes or {})),
                                              'Enabled': True}
            self._entitlements[identity_key] = []
        logger.debug(f"Created identity '{identity_key}'")
        return ProviderResult(changed=True)

    def ensure_attribute(self, identity_key: str, name: str, value: Any,
                         auth_session: Any = None) -> ProviderResult:
        with self._lock:
            identity = self._require(identity_key)
            if name in identity['Attributes'] and identity['Attributes'][name] == value:
                return ProviderResult(changed=False)
            identity['Attributes'][name] = copy.deepcopy(value)
        return ProviderResult(changed=True)

    def disable_identity(self, identity_key: str, auth_session: Any = None) -> ProviderResult:
        with self._lock:
            identity = self._require(identity_key)
            if not identity['Enabled']:
                return ProviderResult(changed=False)
            identity['Enabled'] = False
        return ProviderResult(changed=True)

    def delete_identity(self, identity_key: str, auth_session: Any = None) -> ProviderResult:
        with self._lock:
            if identity_key not in self._identities:
                return ProviderResult(changed=False)
            del self._identities[identity_key]
            self._entitlements.pop(identity_key, None)
        return ProviderResult(changed=True)

    def list_entitlements(self, identity_key: str, auth_session: Any = None) -> List[Entitlement]:
        with self._lock:
            self._require(identity_key)
            return list(self._entitlements.get(identity_key, []))

    def grant_entitlement(self, identity_key: str, entitlement: Entitlement,
                          auth_session: Any = None) -> ProviderResult:
        with self._lock:
            self._require(identity_key)
            current = self._entitlements.setdefault(identity_key, [])
            if any(self._same(e, entitlement) for e in current):
                return ProviderResult(changed=False)
            current.append(entitlement)
        return ProviderResult(changed=True)

    def revoke_entitlement(self, identity_key: str, entitlement: Entitlement,
                           auth_session: Any = None) -> ProviderResult:
        with self._lock:
            self._require(identity_key)
            current = self._entitlements.get(identity_key, [])
            remaining = [e for e in current if not self._same(e, entitlement)]
            if len(remaining) == len(current):
                return ProviderResult(changed=False)
            self._entitlements[identity_key] = remaining
        return ProviderResult(changed=True)

    def _require(self, identity_key: str) -> Dict[str, Any]:
        identity = self._identities.get(identity_key)
        if identity is None:
            raise KeyError(f"Identity '{identity_key}' not found")
        return identity

    @staticmethod
    def _same(left: Entitlement, right: Entitlement) -> bool:
        return left.kind == right.kind and left.id.lower() == right.id.lower()

"""
Provider contract.

Providers are host-supplied adapters to concrete identity systems. The
engine only depends on ``get_capabilities()``; built-in steps call the
capability-backed operations below.
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class ProviderResult:
    """
    Result of a provider operation.

    Attributes:
        changed: True if the operation modified the target system
        data: Optional operation-specific payload
    """
    changed: bool = False
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Entitlement:
    """An entitlement (group membership, role, license, ...)."""
    kind: str
    id: str
    display_name: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping) -> "Entitlement":
        if not isinstance(data, Mapping) or not data.get('Kind') or not data.get('Id'):
            raise ValueError("Entitlement requires 'Kind' and 'Id'")
        return cls(kind=str(data['Kind']), id=str(data['Id']), display_name=data.get('DisplayName'))

    def to_dict(self) -> Dict[str, Any]:
        result = {'Kind': self.kind, 'Id': self.id}
        if self.display_name:
            result['DisplayName'] = self.display_name
        return result


class IdentityProvider(ABC):
    """
    Base class for identity providers.

    Subclasses implement the operations matching the capabilities they
    advertise; unsupported operations raise NotImplementedError.
    """

    @abstractmethod
    def get_capabilities(self) -> List[str]:
        """Return the capability identifiers this provider supports."""

    def get_identity(self, identity_key: str, auth_session: Any = None) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def create_identity(self, identity_key: str, attributes: Dict[str, Any],
                        auth_session: Any = None) -> ProviderResult:
        raise NotImplementedError

    def ensure_attribute(self, identity_key: str, name: str, value: Any,
                         auth_session: Any = None) -> ProviderResult:
        raise NotImplementedError

    def disable_identity(self, identity_key: str, auth_session: Any = None) -> ProviderResult:
        raise NotImplementedError

    def delete_identity(self, identity_key: str, auth_session: Any = None) -> ProviderResult:
        raise NotImplementedError

    def list_entitlements(self, identity_key: str, auth_session: Any = None) -> List[Entitlement]:
        raise NotImplementedError

    def grant_entitlement(self, identity_key: str, entitlement: Entitlement,
                          auth_session: Any = None) -> ProviderResult:
        raise NotImplementedError

    def revoke_entitlement(self, identity_key: str, entitlement: Entitlement,
                           auth_session: Any = None) -> ProviderResult:
        raise NotImplementedError


def result_changed(result: Any) -> bool:
    """Read the Changed flag from a provider result object or mapping."""
    if result is None:
        return False
    if isinstance(result, Mapping):
        return bool(result.get('Changed', result.get('changed', False)))
    return bool(getattr(result, 'changed', False))

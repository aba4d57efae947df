"""
Provider contract and the in-memory mock provider.

Concrete directory adapters are supplied by the host.
"""

from .types import (
    Entitlement,
    IdentityProvider,
    ProviderResult,
    result_changed,
)
from .mock import MockIdentityProvider, MOCK_CAPABILITIES


__all__ = [
    "Entitlement",
    "IdentityProvider",
    "ProviderResult",
    "result_changed",
    "MockIdentityProvider",
    "MOCK_CAPABILITIES",
]

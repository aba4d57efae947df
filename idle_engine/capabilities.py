"""
Capability catalog and validation.

Providers advertise stable, dot-segmented capability identifiers (for example
``IdLE.Identity.Read``). Each step requires a set of capabilities, declared
explicitly or derived from its type; plan building verifies that the step's
provider advertises all of them.
"""

import logging
import re
from collections.abc import Mapping
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .exceptions import CapabilityFinding

logger = logging.getLogger(__name__)

CAPABILITY_PATTERN = re.compile(r'^[A-Za-z0-9]+(\.[A-Za-z0-9]+)+$')

DEFAULT_PROVIDER_ALIAS = "Identity"

STEP_CAPABILITY_CATALOG: Dict[str, Tuple[str, ...]] = {
    "IdLE.Step.EmitEvent": (),
    "IdLE.Step.CreateIdentity": ("IdLE.Identity.Create",),
    "IdLE.Step.EnsureAttribute": ("IdLE.Identity.Attribute.Ensure",),
    "IdLE.Step.DisableIdentity": ("IdLE.Identity.Disable",),
    "IdLE.Step.DeleteIdentity": ("IdLE.Identity.Delete",),
    "IdLE.Step.EnsureEntitlement": (
        "IdLE.Entitlement.List",
        "IdLE.Entitlement.Grant",
        "IdLE.Entitlement.Revoke",
    ),
}


def is_valid_capability(value: Any) -> bool:
    """Check a capability identifier against the dot-segmented format."""
    return isinstance(value, str) and bool(CAPABILITY_PATTERN.match(value))


def normalize_capabilities(values: Iterable[Any]) -> Tuple[str, ...]:
    """
    Normalize a capability list: trim, drop blanks, deduplicate, sort.

    Raises:
        ValueError: If an entry is not a valid capability identifier
    """
    normalized = set()
    for value in values:
        if not isinstance(value, str):
            raise ValueError(f"Capability must be a string, got {type(value).__name__}")
        value = value.strip()
        if not value:
            continue
        if not is_valid_capability(value):
            raise ValueError(f"Invalid capability identifier '{value}'")
        normalized.add(value)
    return tuple(sorted(normalized))


class CapabilityValidator:
    """
    Validates that providers advertise the capabilities their steps require.

    Findings are accumulated across every checked step so the host gets one
    complete report.
    """

    def __init__(self, providers: Optional[Mapping[str, Any]] = None,
                 catalog: Optional[Mapping[str, Iterable[str]]] = None):
        """
        Initialize the validator.

        Args:
            providers: Provider map (alias -> provider instance)
            catalog: Step type -> capability catalog (defaults to the built-in one)
        """
        self.providers = providers or {}
        self.catalog = dict(STEP_CAPABILITY_CATALOG if catalog is None else catalog)
        self.findings: List[CapabilityFinding] = []
        self._advertised: Dict[str, Optional[Tuple[str, ...]]] = {}

    def required_capabilities(self, step_type: str,
                              explicit: Optional[Iterable[str]] = None) -> Tuple[str, ...]:
        """
        Compute a step's required capability set.

        Args:
            step_type: Step type identifier
            explicit: RequiresCapabilities from the workflow (overrides the catalog)

        Returns:
            Sorted, deduplicated capability tuple
        """
        if explicit is not None:
            return normalize_capabilities(explicit)
        return normalize_capabilities(self.catalog.get(step_type, ()))

    def provider_capabilities(self, alias: str) -> Optional[Tuple[str, ...]]:
        """
        Get the normalized capabilities advertised by a provider.

        Results are cached per alias for the lifetime of the validator.

        Returns:
            Capability tuple, or None when the provider cannot report them
        """
        if alias in self._advertised:
            return self._advertised[alias]

        provider = self.providers.get(alias)
        advertised: Optional[Tuple[str, ...]] = None
        get_capabilities = getattr(provider, 'get_capabilities', None)
        if provider is not None and callable(get_capabilities):
            try:
                advertised = normalize_capabilities(get_capabilities() or ())
            except ValueError as e:
                logger.warning(f"Provider '{alias}' advertised invalid capabilities: {e}")
                advertised = None

        self._advertised[alias] = advertised
        return advertised

    def check_step(self, step_name: str, required: Iterable[str], alias: Optional[str]) -> bool:
        """
        Check one step and record findings.

        Returns:
            True if the step's requirements are satisfied
        """
        required = tuple(required)
        if not required:
            return True

        if alias is None or alias not in self.providers:
            for capability in required:
                self.findings.append(CapabilityFinding(step_name, capability, alias))
            logger.debug(f"Step '{step_name}': provider '{alias}' not found")
            return False

        advertised = self.provider_capabilities(alias)
        if advertised is None:
            for capability in required:
                self.findings.append(CapabilityFinding(step_name, capability, alias))
            return False

        missing = [c for c in required if c not in advertised]
        for capability in missing:
            self.findings.append(CapabilityFinding(step_name, capability, alias))
        return not missing

"""Tests for the capability catalog and capability validation."""

from unittest.mock import Mock

import pytest

from idle_engine.capabilities import (
    STEP_CAPABILITY_CATALOG,
    CapabilityValidator,
    is_valid_capability,
    normalize_capabilities,
)


class TestCapabilityIdentifiers:

    def test_valid_identifiers(self):
        assert is_valid_capability("IdLE.Identity.Read")
        assert is_valid_capability("A.b2")

    def test_invalid_identifiers(self):
        for value in ("Identity", "IdLE..Read", "IdLE.Identity.", "IdLE Identity.Read", "", None, 5):
            assert not is_valid_capability(value)

    def test_normalize_trims_dedupes_and_sorts(self):
        values = [" IdLE.Identity.Read ", "IdLE.Entitlement.List", "IdLE.Identity.Read", "  "]
        assert normalize_capabilities(values) == ("IdLE.Entitlement.List", "IdLE.Identity.Read")

    def test_normalize_rejects_invalid(self):
        with pytest.raises(ValueError):
            normalize_capabilities(["not-valid"])
        with pytest.raises(ValueError):
            normalize_capabilities([42])


class TestCapabilityValidator:

    def setup_method(self):
        self.provider = Mock()
        self.provider.get_capabilities.return_value = ["IdLE.Identity.Create", "IdLE.Identity.Disable"]
        self.validator = CapabilityValidator({"Identity": self.provider})

    def test_catalog_lookup(self):
        assert self.validator.required_capabilities("IdLE.Step.EnsureEntitlement") == (
            "IdLE.Entitlement.Grant", "IdLE.Entitlement.List", "IdLE.Entitlement.Revoke",
        )
        assert self.validator.required_capabilities("IdLE.Step.EmitEvent") == ()
        assert self.validator.required_capabilities("Custom.Step.Unknown") == ()

    def test_explicit_requirements_override_catalog(self):
        required = self.validator.required_capabilities(
            "IdLE.Step.CreateIdentity", ["IdLE.Identity.Read"])
        assert required == ("IdLE.Identity.Read",)

    def test_satisfied_step(self):
        assert self.validator.check_step("Create", ("IdLE.Identity.Create",), "Identity") is True
        assert self.validator.findings == []

    def test_missing_capability_recorded(self):
        assert self.validator.check_step("Delete", ("IdLE.Identity.Delete",), "Identity") is False
        finding = self.validator.findings[0]
        assert (finding.step_name, finding.capability, finding.provider) == (
            "Delete", "IdLE.Identity.Delete", "Identity")

    def test_unknown_alias_reports_every_capability(self):
        self.validator.check_step("Grant", STEP_CAPABILITY_CATALOG["IdLE.Step.EnsureEntitlement"], "AD")
        assert len(self.validator.findings) == 3
        assert all(f.provider == "AD" for f in self.validator.findings)

    def test_no_requirement_needs_no_provider(self):
        assert self.validator.check_step("Emit", (), "Missing") is True

    def test_provider_capabilities_cached(self):
        self.validator.check_step("A", ("IdLE.Identity.Create",), "Identity")
        self.validator.check_step("B", ("IdLE.Identity.Disable",), "Identity")
        self.provider.get_capabilities.assert_called_once()

    def test_findings_accumulate(self):
        self.validator.check_step("A", ("IdLE.Identity.Delete",), "Identity")
        self.validator.check_step("B", ("IdLE.Identity.Attribute.Ensure",), "Identity")
        assert [f.step_name for f in self.validator.findings] == ["A", "B"]

"""
Tests for dotted path resolution and {{...}} template resolution.
"""

import pytest

from idle_engine.exceptions import ValidationError
from idle_engine.variables.templates import TemplateResolver, build_template_context
from idle_engine.workflow.paths import MISSING, PathResolver


class TestPathResolver:

    def setup_method(self):
        self.resolver = PathResolver({
            "Request": {"IdentityKeys": {"EmployeeId": "1001"}, "Groups": ["a", "b"], "Manager": None},
        })

    def test_resolve_nested_value(self):
        assert self.resolver.resolve("Request.IdentityKeys.EmployeeId") == "1001"

    def test_integer_segment_indexes_list(self):
        assert self.resolver.resolve("Request.Groups.1") == "b"
        assert self.resolver.resolve("Request.Groups.5") is MISSING

    def test_missing_segment(self):
        assert self.resolver.resolve("Request.IdentityKeys.Upn") is MISSING
        assert self.resolver.resolve("State.Anything") is MISSING

    def test_resolve_safe_treats_none_as_not_found(self):
        found, value, error = self.resolver.resolve_safe("Request.Manager")
        assert found is False
        assert value is None
        assert "not found" in error

    def test_invalid_paths(self):
        for path in ("", "  ", "Request..Id", "Request."):
            with pytest.raises(ValueError):
                PathResolver.split(path)


class TestTemplateResolver:

    def setup_method(self):
        self.resolver = TemplateResolver()
        self.context = build_template_context(
            {
                "LifecycleEvent": "Joiner",
                "IdentityKeys": {"EmployeeId": "1001"},
                "DesiredState": {"Department": "IT", "Manager": None, "Active": True,
                                 "Groups": ["A", "B"], "Level": 3},
            },
            {"WorkflowName": "Joiner - Standard", "LifecycleEvent": "Joiner"},
            policy={"Domain": "example.com"},
        )

    def test_simple_substitution(self):
        assert self.resolver.resolve("{{Request.IdentityKeys.EmployeeId}}", self.context) == "1001"

    def test_whitespace_inside_braces(self):
        assert self.resolver.resolve("{{ Plan.WorkflowName }}", self.context) == "Joiner - Standard"

    def test_multiple_templates_in_one_string(self):
        value = "{{Request.IdentityKeys.EmployeeId}}@{{Policy.Domain}}"
        assert self.resolver.resolve(value, self.context) == "1001@example.com"

    def test_rendering_of_scalars_and_containers(self):
        assert self.resolver.resolve("{{Request.DesiredState.Active}}", self.context) == "true"
        assert self.resolver.resolve("{{Request.DesiredState.Level}}", self.context) == "3"
        assert self.resolver.resolve("{{Request.DesiredState.Groups}}", self.context) == '["A","B"]'

    def test_nested_structures_resolved_keys_untouched(self):
        value = {
            "{{Plan.WorkflowName}}": ["{{Request.DesiredState.Department}}", 5, False],
            "Inner": {"Dept": "{{Request.DesiredState.Department}}"},
        }
        result = self.resolver.resolve(value, self.context)
        assert result == {
            "{{Plan.WorkflowName}}": ["IT", 5, False],
            "Inner": {"Dept": "IT"},
        }

    def test_single_pass_no_rescan(self):
        context = build_template_context({"DesiredState": {"Note": "{{Request.Secret}}"},
                                          "Secret": "x"}, {})
        assert self.resolver.resolve("{{Request.DesiredState.Note}}", context) == "{{Request.Secret}}"

    def test_missing_value_is_error(self):
        with pytest.raises(ValidationError) as exc_info:
            self.resolver.resolve("{{Request.DesiredState.Office}}", self.context, "With.Office")
        assert exc_info.value.errors[0].path == "With.Office"
        assert "missing" in exc_info.value.errors[0].message

    def test_none_value_is_error(self):
        with pytest.raises(ValidationError):
            self.resolver.resolve("{{Request.DesiredState.Manager}}", self.context)

    def test_state_root_rejected_at_build_time(self):
        with pytest.raises(ValidationError) as exc_info:
            self.resolver.resolve("{{State.CreateAccount.IdentityKey}}", self.context)
        assert "run state" in str(exc_info.value)

    def test_unknown_root_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            self.resolver.resolve("{{Env.HOME}}", self.context)
        assert "unsupported root" in str(exc_info.value)

    def test_unbalanced_braces_rejected(self):
        for text in ("{{Request.IdentityKeys.EmployeeId", "Request.X}}", "{{Plan.WorkflowName}} }}"):
            with pytest.raises(ValidationError):
                self.resolver.resolve(text, self.context)

    def test_invalid_expression_rejected(self):
        for text in ("{{}}", "{{Request}}", "{{Request.Identity Keys}}"):
            with pytest.raises(ValidationError):
                self.resolver.resolve(text, self.context)

    def test_all_errors_accumulated(self):
        value = {"A": "{{Request.Nope}}", "B": ["{{State.X.Y}}"], "C": "{{Plan.Nope}}"}
        with pytest.raises(ValidationError) as exc_info:
            self.resolver.resolve(value, self.context)
        assert len(exc_info.value.errors) == 3

"""Tests for strict validation of data-only workflow documents."""

import json

import pytest
import yaml

from idle_engine.exceptions import SecurityViolation, ValidationError
from idle_engine.loader import WorkflowLoader
from idle_engine.models import WorkflowDefinition


def minimal_workflow(**overrides):
    workflow = {
        "Name": "Leaver",
        "LifecycleEvent": "Leaver",
        "Steps": [{"Name": "Disable", "Type": "IdLE.Step.DisableIdentity",
                   "With": {"IdentityKey": "1001"}}],
    }
    workflow.update(overrides)
    return workflow


class TestLoaderValidation:
    """Test strict workflow validation in the loader."""

    @pytest.fixture(autouse=True)
    def setup(self, tmp_path):
        self.workspace = tmp_path
        self.loader = WorkflowLoader()

    def write_workflow(self, content: dict, name: str = "workflow.yaml"):
        """Helper to write workflow YAML."""
        path = self.workspace / name
        with open(path, 'w', encoding='utf-8') as f:
            yaml.safe_dump(content, f, sort_keys=False)
        return path

    def messages(self, exc_info):
        return [str(err) for err in exc_info.value.errors]

    def test_valid_yaml_file(self):
        path = self.write_workflow(minimal_workflow(
            Description="Disable and clean up",
            OnFailureSteps=[{"Name": "Notify", "Type": "IdLE.Step.EmitEvent",
                             "With": {"Message": "Leaver failed"}}],
        ))
        definition = self.loader.load(path)

        assert isinstance(definition, WorkflowDefinition)
        assert definition.name == "Leaver"
        assert definition.description == "Disable and clean up"
        assert [s.name for s in definition.steps] == ["Disable"]
        assert [s.name for s in definition.on_failure_steps] == ["Notify"]
        assert definition.steps[0].with_ == {"IdentityKey": "1001"}

    def test_json_file_with_bom(self):
        path = self.workspace / "workflow.json"
        path.write_bytes(b'\xef\xbb\xbf' + json.dumps(minimal_workflow()).encode('utf-8'))
        assert self.loader.load(path).lifecycle_event == "Leaver"

    def test_yes_no_on_off_stay_strings(self):
        path = self.workspace / "workflow.yaml"
        path.write_text(
            "Name: Mover\n"
            "LifecycleEvent: Mover\n"
            "Steps:\n"
            "  - Name: SetFlag\n"
            "    Type: IdLE.Step.EnsureAttribute\n"
            "    With:\n"
            "      IdentityKey: '1001'\n"
            "      Name: Remote\n"
            "      Value: yes\n"
            "      Other: off\n"
            "      Real: true\n",
            encoding='utf-8',
        )
        with_ = self.loader.load(path).steps[0].with_
        assert with_["Value"] == "yes"
        assert with_["Other"] == "off"
        assert with_["Real"] is True

    def test_unparseable_file(self):
        path = self.workspace / "broken.yaml"
        path.write_text("Name: [unclosed\n", encoding='utf-8')
        with pytest.raises(ValidationError) as exc_info:
            self.loader.load(path)
        assert "Failed to load workflow" in self.messages(exc_info)[0]

    def test_missing_file(self):
        with pytest.raises(ValidationError):
            self.loader.load(self.workspace / "absent.yaml")

    def test_unknown_keys_rejected(self):
        workflow = minimal_workflow(Version="1")
        workflow["Steps"][0]["Timeout"] = 5
        with pytest.raises(ValidationError) as exc_info:
            self.loader.load_dict(workflow)

        messages = self.messages(exc_info)
        assert any("Unknown field 'Version'" in m for m in messages)
        assert any("Unknown field 'Timeout'" in m for m in messages)

    def test_required_fields(self):
        with pytest.raises(ValidationError) as exc_info:
            self.loader.load_dict({"Steps": []})

        messages = self.messages(exc_info)
        assert any("'Name' field is required" in m for m in messages)
        assert any("'LifecycleEvent' field is required" in m for m in messages)
        assert any("'Steps' field is required" in m for m in messages)

    def test_not_a_mapping(self):
        with pytest.raises(ValidationError):
            self.loader.load_dict(["not", "a", "workflow"])

    def test_duplicate_names_across_sections(self):
        workflow = minimal_workflow(OnFailureSteps=[
            {"Name": "Disable", "Type": "IdLE.Step.EmitEvent", "With": {"Message": "x"}},
        ])
        with pytest.raises(ValidationError) as exc_info:
            self.loader.load_dict(workflow)
        assert any("Duplicate step name 'Disable'" in m for m in self.messages(exc_info))

    def test_dotted_step_name_rejected(self):
        workflow = minimal_workflow()
        workflow["Steps"][0]["Name"] = "Disable.Account"
        with pytest.raises(ValidationError) as exc_info:
            self.loader.load_dict(workflow)
        assert any("must not contain '.'" in m for m in self.messages(exc_info))

    def test_step_field_types(self):
        workflow = minimal_workflow(Steps=[{
            "Name": "Bad",
            "Type": "",
            "With": ["not", "a", "mapping"],
            "Condition": "Plan.LifecycleEvent",
            "RequiresCapabilities": ["IdLE.Identity.Disable", "nodots"],
            "RetryProfile": "",
        }])
        with pytest.raises(ValidationError) as exc_info:
            self.loader.load_dict(workflow)

        messages = self.messages(exc_info)
        assert any("'Type' must be a non-empty string" in m for m in messages)
        assert any("'With' must be a dictionary" in m for m in messages)
        assert any("'Condition' must be a dictionary" in m for m in messages)
        assert any("Invalid capability identifier 'nodots'" in m for m in messages)
        assert any("'RetryProfile' must be a non-empty string" in m for m in messages)

    def test_reserved_with_keys(self):
        workflow = minimal_workflow()
        workflow["Steps"][0]["With"].update({"Provider": "", "AuthSessionOptions": {"Role": "Tier0"}})
        with pytest.raises(ValidationError) as exc_info:
            self.loader.load_dict(workflow)

        messages = self.messages(exc_info)
        assert any("'Provider' must be a non-empty string" in m for m in messages)
        assert any("'AuthSessionOptions' requires 'AuthSessionName'" in m for m in messages)

    def test_single_capability_string_accepted(self):
        workflow = minimal_workflow()
        workflow["Steps"][0]["RequiresCapabilities"] = "IdLE.Identity.Disable"
        definition = self.loader.load_dict(workflow)
        assert definition.steps[0].requires_capabilities == ("IdLE.Identity.Disable",)

    def test_executable_content_rejected_first(self):
        workflow = minimal_workflow(Unknown=True)
        workflow["Steps"][0]["With"]["Callback"] = lambda: None
        with pytest.raises(SecurityViolation) as exc_info:
            self.loader.load_dict(workflow)
        assert exc_info.value.errors[0].path == "$.Steps[0].With.Callback"

    def test_round_trip_through_to_dict(self):
        definition = self.loader.load_dict(minimal_workflow())
        assert self.loader.load_dict(definition.to_dict()) == definition

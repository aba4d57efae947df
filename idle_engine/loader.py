"""Workflow loader and strict validation of data-only workflow documents."""

import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any, List, Optional, Set, Tuple, Union
import yaml

from .exceptions import ValidationError, ValidationFinding
from .models import StepDefinition, WorkflowDefinition
from .capabilities import is_valid_capability
from .security.data_only import assert_no_executable_content


class DataOnlyLoader(yaml.SafeLoader):
    """YAML loader that only treats true/false as booleans.

    Attribute values such as 'on', 'off', 'yes' or 'no' stay strings instead
    of silently turning into booleans.
    """
    pass


# Drop the YAML 1.1 implicit bool resolvers and re-add a true/false-only one
DataOnlyLoader.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers if tag != 'tag:yaml.org,2002:bool']
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}
DataOnlyLoader.add_implicit_resolver(
    'tag:yaml.org,2002:bool',
    re.compile(r'^(?:true|True|TRUE|false|False|FALSE)$'),
    list('tTfF'),
)


class WorkflowLoader:
    """Loads and validates workflow documents (YAML, JSON or mappings)."""

    TOP_LEVEL_FIELDS = {'Name', 'LifecycleEvent', 'Description', 'Steps', 'OnFailureSteps'}
    STEP_FIELDS = {'Name', 'Type', 'With', 'Condition', 'RequiresCapabilities',
                   'RetryProfile', 'Description'}

    def __init__(self):
        """Initialize loader."""
        self.errors: List[ValidationFinding] = []

    def load(self, workflow_path: Union[str, Path]) -> WorkflowDefinition:
        """Load and validate a workflow file (YAML or JSON)."""
        self.errors = []
        try:
            with open(workflow_path, 'r', encoding='utf-8-sig') as f:
                document = yaml.load(f, Loader=DataOnlyLoader)
        except (OSError, yaml.YAMLError) as e:
            self._add_error(f"Failed to load workflow: {e}")
            self._raise_validation_errors()

        return self.load_dict(document)

    def load_dict(self, document: Any) -> WorkflowDefinition:
        """
        Validate a parsed workflow document and convert it.

        The data-only check runs over the entire raw document before any
        other validation.

        Args:
            document: Parsed workflow document

        Returns:
            Validated WorkflowDefinition

        Raises:
            SecurityViolation: If executable content is present
            ValidationError: If the document is malformed
        """
        self.errors = []

        assert_no_executable_content(document, "$")

        if document is None or not isinstance(document, Mapping):
            self._add_error("Workflow must be an object/dictionary")
            self._raise_validation_errors()

        self._validate_top_level(document)

        step_names: Set[str] = set()
        steps = self._validate_steps(document.get('Steps'), 'Steps', step_names, required=True)
        on_failure = self._validate_steps(document.get('OnFailureSteps'), 'OnFailureSteps',
                                          step_names, required=False)

        if self.errors:
            self._raise_validation_errors()

        return WorkflowDefinition(
            name=document['Name'],
            lifecycle_event=document['LifecycleEvent'],
            steps=steps,
            on_failure_steps=on_failure,
            description=document.get('Description'),
        )

    def _validate_top_level(self, document: Mapping):
        """Validate top-level workflow fields."""
        for key in document.keys():
            if key not in self.TOP_LEVEL_FIELDS:
                self._add_error(f"Unknown field '{key}'", '$')

        for field in ('Name', 'LifecycleEvent'):
            value = document.get(field)
            if value is None:
                self._add_error(f"'{field}' field is required", '$')
            elif not isinstance(value, str) or not value.strip():
                self._add_error(f"'{field}' must be a non-empty string", f"$.{field}")

        if 'Description' in document and not isinstance(document['Description'], str):
            self._add_error("'Description' must be a string", '$.Description')

    def _validate_steps(self, steps: Any, section: str, step_names: Set[str],
                        required: bool) -> Tuple[StepDefinition, ...]:
        """Validate step definitions of one section."""
        if steps is None:
            if required:
                self._add_error(f"'{section}' field is required and must not be empty", '$')
            return ()

        if not isinstance(steps, list):
            self._add_error(f"'{section}' must be a list", f"$.{section}")
            return ()

        if required and not steps:
            self._add_error(f"'{section}' field is required and must not be empty", '$')

        definitions = []
        for i, step in enumerate(steps):
            path = f"$.{section}[{i}]"
            definition = self._validate_step(step, path, step_names)
            if definition is not None:
                definitions.append(definition)
        return tuple(definitions)

    def _validate_step(self, step: Any, path: str, step_names: Set[str]) -> Optional[StepDefinition]:
        if not isinstance(step, Mapping):
            self._add_error("Step must be a dictionary", path)
            return None

        error_count = len(self.errors)

        for key in step.keys():
            if key not in self.STEP_FIELDS:
                self._add_error(f"Unknown field '{key}'", path)

        # Name is required, unique across Steps and OnFailureSteps, and usable as a State namespace
        name = step.get('Name')
        if not name:
            self._add_error("missing required 'Name' field", path)
        elif not isinstance(name, str):
            self._add_error(f"Name must be a string, got {type(name).__name__}", path)
        elif '.' in name:
            self._add_error(f"Step name '{name}' must not contain '.'", path)
        elif name in step_names:
            self._add_error(f"Duplicate step name '{name}'", path)
        else:
            step_names.add(name)

        step_type = step.get('Type')
        if not isinstance(step_type, str) or not step_type.strip():
            self._add_error("'Type' must be a non-empty string", path)

        with_ = step.get('With', {})
        if with_ is None:
            with_ = {}
        if not isinstance(with_, Mapping):
            self._add_error("'With' must be a dictionary", f"{path}.With")
        else:
            self._validate_with(with_, f"{path}.With")

        condition = step.get('Condition')
        if condition is not None and not isinstance(condition, Mapping):
            self._add_error("'Condition' must be a dictionary", f"{path}.Condition")

        requires = step.get('RequiresCapabilities')
        if isinstance(requires, str):
            requires = [requires]
        if requires is not None:
            if not isinstance(requires, list):
                self._add_error("'RequiresCapabilities' must be a list of strings",
                                f"{path}.RequiresCapabilities")
            else:
                for j, capability in enumerate(requires):
                    if not is_valid_capability(capability):
                        self._add_error(f"Invalid capability identifier {capability!r}",
                                        f"{path}.RequiresCapabilities[{j}]")

        retry_profile = step.get('RetryProfile')
        if retry_profile is not None and (not isinstance(retry_profile, str) or not retry_profile):
            self._add_error("'RetryProfile' must be a non-empty string", f"{path}.RetryProfile")

        description = step.get('Description')
        if description is not None and not isinstance(description, str):
            self._add_error("'Description' must be a string", f"{path}.Description")

        if len(self.errors) != error_count:
            return None

        return StepDefinition(
            name=name,
            type=step_type,
            with_=_plain(with_),
            condition=_plain(condition) if condition is not None else None,
            requires_capabilities=tuple(requires) if requires is not None else None,
            retry_profile=retry_profile,
            description=description,
        )

    def _validate_with(self, with_: Mapping, path: str):
        """Validate reserved keys inside a step's With block."""
        for key in with_.keys():
            if not isinstance(key, str):
                self._add_error(f"Parameter names must be strings, got {key!r}", path)

        provider = with_.get('Provider')
        if provider is not None and (not isinstance(provider, str) or not provider.strip()):
            self._add_error("'Provider' must be a non-empty string", f"{path}.Provider")

        auth_name = with_.get('AuthSessionName')
        if auth_name is not None and (not isinstance(auth_name, str) or not auth_name.strip()):
            self._add_error("'AuthSessionName' must be a non-empty string", f"{path}.AuthSessionName")

        auth_options = with_.get('AuthSessionOptions')
        if auth_options is not None:
            if not isinstance(auth_options, Mapping):
                self._add_error("'AuthSessionOptions' must be a dictionary", f"{path}.AuthSessionOptions")
            elif auth_name is None:
                self._add_error("'AuthSessionOptions' requires 'AuthSessionName'", f"{path}.AuthSessionOptions")

    def _add_error(self, message: str, path: str = ""):
        """Add validation error."""
        self.errors.append(ValidationFinding(message, path))

    def _raise_validation_errors(self):
        """Raise ValidationError with accumulated errors."""
        raise ValidationError(self.errors)


def _plain(value: Any) -> Any:
    """Copy a validated data tree into plain dicts and lists."""
    if isinstance(value, Mapping):
        return {k: _plain(v) for k, v in value.items()}
    elif isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value

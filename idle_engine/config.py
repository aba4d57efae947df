"""Execution options: named retry profiles and the default profile.

Options can be built in code or loaded from a YAML/JSON document::

    RetryProfiles:
      Default:
        MaxAttempts: 3
        InitialDelayMilliseconds: 250
        BackoffFactor: 2.0
        MaxDelayMilliseconds: 5000
        JitterRatio: 0.2
    DefaultRetryProfile: Default
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union
import yaml

from .exceptions import ValidationError, ValidationFinding
from .exec.retry import NO_RETRY, RetryProfile
from .security.data_only import assert_no_executable_content

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExecutionOptions:
    """Per-execution configuration."""
    retry_profiles: Dict[str, RetryProfile] = field(default_factory=dict)
    default_retry_profile: Optional[str] = None

    KNOWN_FIELDS = {'RetryProfiles', 'DefaultRetryProfile'}

    def __post_init__(self):
        errors = []
        for name, profile in self.retry_profiles.items():
            if not isinstance(profile, RetryProfile):
                errors.append(ValidationFinding("must be a RetryProfile", f"RetryProfiles.{name}"))
                continue
            errors.extend(ValidationFinding(message, f"RetryProfiles.{name}")
                          for message in profile.validate())
        if self.default_retry_profile is not None and self.default_retry_profile not in self.retry_profiles:
            errors.append(ValidationFinding(
                f"DefaultRetryProfile '{self.default_retry_profile}' is not defined in RetryProfiles",
                "DefaultRetryProfile",
            ))
        if errors:
            raise ValidationError(errors)

    def resolve_retry_profile(self, name: Optional[str] = None) -> RetryProfile:
        """
        Resolve the effective retry profile for a step.

        Order: the step's named profile, then the default profile, then the
        built-in no-retry profile.
        """
        if name:
            if name in self.retry_profiles:
                return self.retry_profiles[name]
            logger.warning(f"Retry profile '{name}' is not defined, falling back to the default profile")
        if self.default_retry_profile:
            return self.retry_profiles[self.default_retry_profile]
        return NO_RETRY

    @classmethod
    def from_dict(cls, data: Any) -> "ExecutionOptions":
        """
        Create options from their PascalCase mapping form.

        Raises:
            ValidationError: With every finding accumulated
        """
        if data is None:
            return cls()
        if not isinstance(data, Mapping):
            raise ValidationError.single("Execution options must be a mapping")
        assert_no_executable_content(data, "ExecutionOptions")

        errors = [ValidationFinding(f"Unknown field '{key}'", "ExecutionOptions")
                  for key in data.keys() if key not in cls.KNOWN_FIELDS]

        profiles: Dict[str, RetryProfile] = {}
        raw_profiles = data.get('RetryProfiles') or {}
        if not isinstance(raw_profiles, Mapping):
            errors.append(ValidationFinding("must be a mapping", "RetryProfiles"))
            raw_profiles = {}
        for name, raw in raw_profiles.items():
            try:
                profiles[name] = RetryProfile.from_dict(raw, f"RetryProfiles.{name}")
            except ValidationError as e:
                errors.extend(e.errors)

        default = data.get('DefaultRetryProfile')
        if default is not None and not isinstance(default, str):
            errors.append(ValidationFinding("must be a string", "DefaultRetryProfile"))
            default = None

        if errors:
            raise ValidationError(errors)
        return cls(retry_profiles=profiles, default_retry_profile=default)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "ExecutionOptions":
        """Load options from a YAML or JSON file."""
        try:
            with open(path, 'r', encoding='utf-8-sig') as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ValidationError.single(f"Failed to load execution options: {e}", str(path))
        return cls.from_dict(data)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'RetryProfiles': {name: p.to_dict() for name, p in self.retry_profiles.items()},
            'DefaultRetryProfile': self.default_retry_profile,
        }

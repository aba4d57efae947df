"""Tests for execution options (retry profiles)."""

import json
import logging

import pytest
import yaml

from idle_engine.config import ExecutionOptions
from idle_engine.exceptions import SecurityViolation, ValidationError
from idle_engine.exec.retry import NO_RETRY, RetryProfile


OPTIONS = {
    "RetryProfiles": {
        "Default": {"MaxAttempts": 3, "InitialDelayMilliseconds": 250, "BackoffFactor": 2.0,
                    "MaxDelayMilliseconds": 5000, "JitterRatio": 0.2},
        "Patient": {"MaxAttempts": 6, "InitialDelayMilliseconds": 1000},
    },
    "DefaultRetryProfile": "Default",
}


class TestExecutionOptions:

    def test_from_dict(self):
        options = ExecutionOptions.from_dict(OPTIONS)
        assert options.default_retry_profile == "Default"
        assert options.retry_profiles["Patient"].max_attempts == 6
        assert options.retry_profiles["Patient"].backoff_factor == 2.0

    def test_none_gives_empty_options(self):
        options = ExecutionOptions.from_dict(None)
        assert options.retry_profiles == {}
        assert options.resolve_retry_profile("Anything") == NO_RETRY

    def test_resolution_order(self):
        options = ExecutionOptions.from_dict(OPTIONS)
        assert options.resolve_retry_profile("Patient").max_attempts == 6
        assert options.resolve_retry_profile(None) == options.retry_profiles["Default"]

    def test_unknown_profile_falls_back_with_warning(self, caplog):
        options = ExecutionOptions.from_dict(OPTIONS)
        with caplog.at_level(logging.WARNING, logger="idle_engine.config"):
            profile = options.resolve_retry_profile("Missing")
        assert profile == options.retry_profiles["Default"]
        assert "Retry profile 'Missing' is not defined" in caplog.text

    def test_no_default_means_no_retry(self):
        options = ExecutionOptions(retry_profiles={"Fast": RetryProfile(max_attempts=2)})
        assert options.resolve_retry_profile(None) is NO_RETRY

    def test_errors_accumulated(self):
        with pytest.raises(ValidationError) as exc_info:
            ExecutionOptions.from_dict({
                "RetryProfiles": {"Bad": {"MaxAttempts": 0, "JitterRatio": 2}},
                "DefaultRetryProfile": 5,
                "Extra": True,
            })
        paths = [e.path for e in exc_info.value.errors]
        assert paths.count("RetryProfiles.Bad") == 2
        assert "DefaultRetryProfile" in paths
        assert "ExecutionOptions" in paths

    def test_undefined_default_rejected(self):
        with pytest.raises(ValidationError):
            ExecutionOptions.from_dict({"RetryProfiles": {}, "DefaultRetryProfile": "Nope"})

    def test_executable_content_rejected(self):
        with pytest.raises(SecurityViolation):
            ExecutionOptions.from_dict({"RetryProfiles": {"X": {"MaxAttempts": lambda: 3}}})

    def test_from_yaml_and_json_files(self, tmp_path):
        yaml_path = tmp_path / "options.yaml"
        yaml_path.write_text(yaml.safe_dump(OPTIONS), encoding='utf-8')
        json_path = tmp_path / "options.json"
        json_path.write_text(json.dumps(OPTIONS), encoding='utf-8')

        assert ExecutionOptions.from_file(yaml_path) == ExecutionOptions.from_file(json_path)

    def test_from_missing_file(self, tmp_path):
        with pytest.raises(ValidationError):
            ExecutionOptions.from_file(tmp_path / "absent.yaml")

    def test_to_dict_round_trip(self):
        options = ExecutionOptions.from_dict(OPTIONS)
        assert ExecutionOptions.from_dict(options.to_dict()) == options

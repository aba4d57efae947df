"""Run state for a single plan execution.

State is a namespaced mapping written only through replace-at-path updates:
a write replaces whatever sits at the target path and is never deep-merged.
Each step may only write below its own namespace, ``State.<StepName>``.
"""

import copy
from collections.abc import Mapping
from typing import Any, Dict, List

from .workflow.paths import MISSING, PathResolver


class StateWriteError(ValueError):
    """Raised when a step output cannot be written to run state."""
    pass


class RunState:
    """Mutable, per-run state. Never shared between runs."""

    def __init__(self):
        self._data: Dict[str, Any] = {}

    def get(self, path: str) -> Any:
        """
        Read a value by path relative to the State root.

        Returns:
            The value, or MISSING
        """
        return PathResolver(self._data).resolve(path)

    def set_path(self, path: str, value: Any) -> None:
        """
        Replace the value at ``path``, creating intermediate mappings.

        Args:
            path: Dotted path relative to the State root
            value: New value (deep-copied)

        Raises:
            StateWriteError: If an intermediate segment holds a non-mapping value
        """
        try:
            parts = PathResolver.split(path)
        except ValueError as e:
            raise StateWriteError(str(e))

        current = self._data
        walked: List[str] = []
        for part in parts[:-1]:
            walked.append(part)
            nxt = current.get(part, MISSING)
            if nxt is MISSING:
                nxt = {}
                current[part] = nxt
            elif not isinstance(nxt, dict):
                raise StateWriteError(
                    f"Cannot write 'State.{path}': 'State.{'.'.join(walked)}' is not a mapping"
                )
            current = nxt
        current[parts[-1]] = copy.deepcopy(value)

    def commit_outputs(self, step_name: str, outputs: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Write a step's outputs below ``State.<step_name>``.

        Keys are paths relative to the step namespace; they cannot address
        anything outside it. All keys are validated before anything is written,
        so a rejected output set leaves state untouched.

        Args:
            step_name: Name of the step that produced the outputs
            outputs: Mapping of relative path to value

        Returns:
            Mapping of full ``State.*`` path to written value

        Raises:
            StateWriteError: If any output key is invalid
        """
        if not isinstance(outputs, Mapping):
            raise StateWriteError(f"Step '{step_name}' outputs must be a mapping")

        targets = []
        for key, value in outputs.items():
            if not isinstance(key, str):
                raise StateWriteError(f"Step '{step_name}' output key {key!r} must be a string")
            try:
                PathResolver.split(key)
            except ValueError as e:
                raise StateWriteError(f"Step '{step_name}' output key {key!r}: {e}")
            targets.append((f"{step_name}.{key}", value))

        backup = copy.deepcopy(self._data)
        written = {}
        try:
            for path, value in targets:
                self.set_path(path, value)
                written[f"State.{path}"] = copy.deepcopy(value)
        except StateWriteError:
            self._data = backup
            raise
        return written

    def snapshot(self) -> Dict[str, Any]:
        """Deep copy of the current state (for conditions and results)."""
        return copy.deepcopy(self._data)

    def to_dict(self) -> Dict[str, Any]:
        return self.snapshot()

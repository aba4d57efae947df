"""
Condition evaluation for workflow steps.
Implements the declarative predicate language: Equals, Exists, All.
"""

from collections.abc import Mapping
from typing import Any, Dict, List, Optional

from .paths import MISSING, PathResolver


class ConditionEvaluator:
    """
    Evaluates step conditions to determine if a step should be executed.

    Supports:
    - {Equals: {Path, Value}}: deep equality of the value at Path and Value
    - {Exists: {Path}} or {Exists: "Path"}: Path resolves to a non-null value
    - {All: [...]}: logical AND over child conditions (empty All is true)
    - {Path, Equals}: legacy single-level alias for Equals
    """

    NODE_TYPES = ('Equals', 'Exists', 'All')

    def evaluate(self, condition: Optional[Dict[str, Any]], context: Mapping) -> bool:
        """
        Evaluate a step condition.

        Args:
            condition: The condition tree from the step (None means always true)
            context: Evaluation context with Plan, Request and State roots

        Returns:
            True if the condition is met (step should execute),
            False if not met (step should be skipped)

        Raises:
            ValueError: If the condition format is invalid
        """
        if condition is None:
            return True

        errors = self.validate(condition)
        if errors:
            raise ValueError(f"Invalid condition: {'; '.join(errors)}")

        return self._evaluate_node(condition, PathResolver(context))

    def validate(self, condition: Any, path: str = "Condition") -> List[str]:
        """
        Validate the structure of a condition tree.

        Args:
            condition: Condition node
            path: Location label for messages

        Returns:
            List of validation error messages (empty if valid)
        """
        errors: List[str] = []

        if not isinstance(condition, Mapping):
            errors.append(f"{path}: expected a mapping, got {type(condition).__name__}")
            return errors

        if self._is_legacy(condition):
            unknown = set(condition.keys()) - {'Path', 'Equals'}
            if unknown:
                errors.append(f"{path}: unknown keys {sorted(unknown)}")
            errors.extend(self._validate_path(condition.get('Path'), f"{path}.Path"))
            return errors

        present = [k for k in condition.keys() if k in self.NODE_TYPES]
        unknown = [k for k in condition.keys() if k not in self.NODE_TYPES]

        if unknown:
            errors.append(f"{path}: unknown condition type(s) {sorted(unknown)}. "
                          f"Expected one of: {list(self.NODE_TYPES)}")
        if len(present) == 0 and not unknown:
            errors.append(f"{path}: requires one of {list(self.NODE_TYPES)}")
        elif len(present) > 1:
            errors.append(f"{path}: only one condition type allowed, found {present}")

        if errors:
            return errors

        node_type = present[0]
        body = condition[node_type]

        if node_type == 'Equals':
            if not isinstance(body, Mapping):
                errors.append(f"{path}.Equals: expected a mapping with 'Path' and 'Value'")
            else:
                unknown = set(body.keys()) - {'Path', 'Value'}
                if unknown:
                    errors.append(f"{path}.Equals: unknown keys {sorted(unknown)}")
                if 'Value' not in body:
                    errors.append(f"{path}.Equals: missing 'Value'")
                errors.extend(self._validate_path(body.get('Path'), f"{path}.Equals.Path"))
        elif node_type == 'Exists':
            if isinstance(body, Mapping):
                unknown = set(body.keys()) - {'Path'}
                if unknown:
                    errors.append(f"{path}.Exists: unknown keys {sorted(unknown)}")
                errors.extend(self._validate_path(body.get('Path'), f"{path}.Exists.Path"))
            else:
                errors.extend(self._validate_path(body, f"{path}.Exists"))
        elif node_type == 'All':
            if not isinstance(body, list):
                errors.append(f"{path}.All: expected a list of conditions")
            else:
                for i, child in enumerate(body):
                    errors.extend(self.validate(child, f"{path}.All[{i}]"))

        return errors

    def _is_legacy(self, condition: Mapping) -> bool:
        return 'Path' in condition and 'Equals' in condition

    def _validate_path(self, value: Any, path: str) -> List[str]:
        if not isinstance(value, str) or not value.strip():
            return [f"{path}: expected a non-empty string path"]
        try:
            PathResolver.split(value)
        except ValueError as e:
            return [f"{path}: {e}"]
        return []

    def _evaluate_node(self, node: Mapping, resolver: PathResolver) -> bool:
        if self._is_legacy(node):
            return self._evaluate_equals(node['Path'], node['Equals'], resolver)
        if 'Equals' in node:
            return self._evaluate_equals(node['Equals']['Path'], node['Equals']['Value'], resolver)
        if 'Exists' in node:
            body = node['Exists']
            target = body['Path'] if isinstance(body, Mapping) else body
            value = resolver.resolve(target)
            return value is not MISSING and value is not None
        if 'All' in node:
            return all(self._evaluate_node(child, resolver) for child in node['All'])
        return True

    def _evaluate_equals(self, path: str, expected: Any, resolver: PathResolver) -> bool:
        actual = resolver.resolve(path)
        if actual is MISSING:
            actual = None
        return deep_equals(actual, expected)


def deep_equals(left: Any, right: Any) -> bool:
    """
    Structural equality over mappings, sequences and scalars.

    Booleans never compare equal to numbers, and lists and tuples are
    interchangeable.
    """
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if isinstance(left, Mapping) and isinstance(right, Mapping):
        if set(left.keys()) != set(right.keys()):
            return False
        return all(deep_equals(left[k], right[k]) for k in left)
    if isinstance(left, (list, tuple)) and isinstance(right, (list, tuple)):
        if len(left) != len(right):
            return False
        return all(deep_equals(a, b) for a, b in zip(left, right))
    if isinstance(left, (Mapping, list, tuple)) or isinstance(right, (Mapping, list, tuple)):
        return False
    return left == right

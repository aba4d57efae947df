"""
Dotted path resolution against the read-only evaluation context.

Paths look like ``Request.IdentityKeys.EmployeeId`` or
``State.CreateAccount.IdentityKey``. The first segment is the root
(Request, Plan, State, Policy); further segments walk mappings, and integer
segments index into lists.
"""

from collections.abc import Mapping
from typing import Any, List, Optional, Tuple


class _Missing:
    """Sentinel for values that are absent from the context."""

    def __repr__(self) -> str:
        return "MISSING"


MISSING = _Missing()


class PathResolver:
    """Resolves dotted paths within a nested context mapping."""

    def __init__(self, context: Mapping):
        """
        Initialize path resolver with an evaluation context.

        Args:
            context: Mapping of roots (e.g. Request, Plan, State) to data
        """
        self.context = context

    @staticmethod
    def split(path: str) -> List[str]:
        """
        Split a dotted path into segments.

        Raises:
            ValueError: If the path is empty or contains empty segments
        """
        if not isinstance(path, str) or not path.strip():
            raise ValueError(f"Invalid path: {path!r}")
        parts = [part.strip() for part in path.strip().split('.')]
        if any(not part for part in parts):
            raise ValueError(f"Invalid path '{path}': empty segment")
        return parts

    def resolve(self, path: str) -> Any:
        """
        Resolve a path to its value.

        Args:
            path: Dotted path such as "Request.IdentityKeys.Id"

        Returns:
            Resolved value, or MISSING when any segment is absent
        """
        current: Any = self.context
        for part in self.split(path):
            if isinstance(current, Mapping):
                if part not in current:
                    return MISSING
                current = current[part]
            elif isinstance(current, (list, tuple)) and part.isdigit():
                index = int(part)
                if index >= len(current):
                    return MISSING
                current = current[index]
            else:
                return MISSING
        return current

    def resolve_safe(self, path: str) -> Tuple[bool, Any, Optional[str]]:
        """
        Resolve a path, returning success status and error message.

        Absent values and explicit ``None`` both count as not found.

        Returns:
            (found, value, error_message) tuple
        """
        try:
            value = self.resolve(path)
        except ValueError as e:
            return False, None, str(e)
        if value is MISSING or value is None:
            return False, None, f"Path '{path}' not found"
        return True, value, None

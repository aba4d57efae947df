"""
Data-only enforcement for untrusted input.

Workflow documents, step parameters, auth session options and requests must
be pure data: mappings, sequences and scalars. Any callable, compiled code,
module, frame, generator or coroutine found anywhere in such a structure is
rejected, however deeply it is nested.
"""

import types
from collections.abc import Mapping
from typing import Any, List, Tuple

from ..exceptions import SecurityViolation, ValidationFinding

SCALAR_TYPES = (str, bytes, bool, int, float, type(None))

EXECUTABLE_TYPES = (
    types.CodeType,
    types.FrameType,
    types.GeneratorType,
    types.CoroutineType,
    types.AsyncGeneratorType,
    types.ModuleType,
)


def is_executable(value: Any) -> bool:
    """Check whether a value is code or something that runs code."""
    return callable(value) or isinstance(value, EXECUTABLE_TYPES)


def find_executable_content(value: Any, path: str = "$") -> List[str]:
    """
    Return the paths of all executable content found inside ``value``.

    The walk uses an explicit stack, so there is no depth limit and no
    recursion limit. Objects already visited are skipped, which keeps cyclic
    structures finite.

    Args:
        value: Value to inspect
        path: Path label for the root value

    Returns:
        List of offending paths (empty when the value is data-only)
    """
    offending: List[str] = []
    seen = set()
    stack: List[Tuple[Any, str]] = [(value, path)]

    while stack:
        current, current_path = stack.pop()

        if isinstance(current, SCALAR_TYPES):
            continue

        if is_executable(current):
            offending.append(current_path)
            continue

        marker = id(current)
        if marker in seen:
            continue
        seen.add(marker)

        if isinstance(current, Mapping):
            children = []
            for key, item in current.items():
                if is_executable(key):
                    offending.append(f"{current_path}.<key>")
                children.append((item, f"{current_path}.{key}"))
            stack.extend(reversed(children))
        elif isinstance(current, (list, tuple)):
            stack.extend(reversed([
                (item, f"{current_path}[{index}]") for index, item in enumerate(current)
            ]))
        elif isinstance(current, (set, frozenset)):
            stack.extend((item, f"{current_path}[*]") for item in current)
        else:
            # Wrapped objects: walk instance attributes
            attributes = {}
            if hasattr(current, '__dict__'):
                attributes.update(vars(current))
            for slot in getattr(type(current), '__slots__', ()):
                if hasattr(current, slot):
                    attributes[slot] = getattr(current, slot)
            stack.extend(reversed([
                (item, f"{current_path}.{name}") for name, item in attributes.items()
            ]))

    return offending


def assert_no_executable_content(value: Any, path: str = "$") -> None:
    """
    Raise SecurityViolation when ``value`` contains executable content.

    Args:
        value: Value to inspect
        path: Path label used in error messages

    Raises:
        SecurityViolation: If any executable content is found
    """
    offending = find_executable_content(value, path)
    if offending:
        raise SecurityViolation([
            ValidationFinding("executable content is not allowed in data-only input", p)
            for p in offending
        ])

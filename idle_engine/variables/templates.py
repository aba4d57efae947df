"""
Template resolution for step parameters.
Handles {{Root.Path}} placeholders with roots: Request, Plan, Policy.

Resolution happens once, when the plan is built. ``State.*`` references are
recognized but rejected, because no run state exists at build time.
"""

import json
import re
from collections.abc import Mapping
from typing import Any, Dict, List, Optional, Sequence

from ..exceptions import ValidationError, ValidationFinding
from ..workflow.paths import PathResolver


class TemplateResolver:
    """
    Resolves {{...}} placeholders in strings and nested data structures.

    Supports roots:
    - Request: {{Request.IdentityKeys.EmployeeId}}, {{Request.DesiredState.Department}}
    - Plan: {{Plan.WorkflowName}}, {{Plan.LifecycleEvent}}, {{Plan.CorrelationId}}
    - Policy: {{Policy.<key>}} (host-supplied mapping)
    """

    TEMPLATE_PATTERN = re.compile(r'\{\{(.*?)\}\}')
    PATH_PATTERN = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z0-9_]+)+$')
    DEFAULT_ROOTS = ('Request', 'Plan', 'Policy')
    RUNTIME_ROOTS = ('State',)

    def __init__(self, allowed_roots: Sequence[str] = DEFAULT_ROOTS):
        """
        Initialize the resolver.

        Args:
            allowed_roots: Context roots that may be referenced
        """
        self.allowed_roots = tuple(allowed_roots)
        self.errors: List[ValidationFinding] = []

    def resolve(self, value: Any, context: Mapping, path: str = "") -> Any:
        """
        Resolve templates in a value (string, list, or mapping).

        Args:
            value: The value to resolve
            context: Read-only evaluation context keyed by root name
            path: Location label used in error messages

        Returns:
            Value with every placeholder substituted

        Raises:
            ValidationError: If any placeholder is malformed or references a missing path
        """
        self.errors = []
        result = self._resolve_value(value, PathResolver(context), path)
        if self.errors:
            raise ValidationError(self.errors)
        return result

    def contains_template(self, text: str) -> bool:
        """Check whether a string carries template syntax."""
        return isinstance(text, str) and ('{{' in text or '}}' in text)

    def _resolve_value(self, value: Any, resolver: PathResolver, path: str) -> Any:
        if isinstance(value, str):
            return self._resolve_string(value, resolver, path)
        elif isinstance(value, Mapping):
            return {k: self._resolve_value(v, resolver, f"{path}.{k}" if path else str(k))
                    for k, v in value.items()}
        elif isinstance(value, (list, tuple)):
            return [self._resolve_value(item, resolver, f"{path}[{i}]") for i, item in enumerate(value)]
        else:
            # Non-string scalars pass through unchanged
            return value

    def _resolve_string(self, text: str, resolver: PathResolver, path: str) -> str:
        """
        Substitute placeholders in a single string.

        Single pass: substituted text is never scanned again.
        """
        if not self.contains_template(text):
            return text

        leftover = self.TEMPLATE_PATTERN.sub('', text)
        if '{{' in leftover or '}}' in leftover:
            self.errors.append(ValidationFinding(
                f"Unbalanced template braces in '{text}'", path
            ))
            return text

        def replace_template(match):
            expression = match.group(1).strip()
            rendered = self._render(expression, resolver, path)
            if rendered is None:
                return match.group(0)
            return rendered

        return self.TEMPLATE_PATTERN.sub(replace_template, text)

    def _render(self, expression: str, resolver: PathResolver, path: str) -> Optional[str]:
        if not self.PATH_PATTERN.match(expression):
            self.errors.append(ValidationFinding(
                f"Invalid template expression '{{{{{expression}}}}}'", path
            ))
            return None

        root = expression.split('.', 1)[0]
        if root in self.RUNTIME_ROOTS and root not in self.allowed_roots:
            self.errors.append(ValidationFinding(
                f"Template '{{{{{expression}}}}}' references run state, "
                f"which is not available when the plan is built", path
            ))
            return None
        if root not in self.allowed_roots:
            self.errors.append(ValidationFinding(
                f"Template '{{{{{expression}}}}}' uses unsupported root '{root}'. "
                f"Supported: {list(self.allowed_roots)}", path
            ))
            return None

        found, value, _ = resolver.resolve_safe(expression)
        if not found:
            self.errors.append(ValidationFinding(
                f"Template '{{{{{expression}}}}}' references a missing value", path
            ))
            return None

        return self.to_string(value)

    @staticmethod
    def to_string(value: Any) -> str:
        """Render a resolved value as a single-line string."""
        if isinstance(value, bool):
            return 'true' if value else 'false'
        elif isinstance(value, (int, float)):
            return str(value)
        elif isinstance(value, str):
            return value
        else:
            # Complex types get compact JSON representation
            return json.dumps(value, sort_keys=True, separators=(',', ':'), default=str)


def build_template_context(
    request_context: Mapping,
    plan_context: Mapping,
    policy: Optional[Mapping] = None,
) -> Dict[str, Any]:
    """
    Build the build-time template context.

    Args:
        request_context: LifecycleRequest in context form
        plan_context: Plan metadata (WorkflowName, LifecycleEvent, ...)
        policy: Optional host policy mapping

    Returns:
        Combined context dictionary
    """
    context: Dict[str, Any] = {
        'Request': request_context,
        'Plan': plan_context,
    }
    if policy:
        context['Policy'] = policy
    return context

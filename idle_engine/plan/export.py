"""
Plan export artifact.

Canonical, pretty-printed JSON rendering of a plan for review and diffing
before execution. Step order and resolved ``With`` values are preserved.
Files are written as UTF-8 without a BOM.
"""

import json
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Dict, Union

from ..exceptions import ValidationError, ValidationFinding
from ..models import Plan, PlanStep
from ..security.data_only import assert_no_executable_content

SCHEMA_VERSION = "1.0"

REQUIRED_FIELDS = ('SchemaVersion', 'WorkflowName', 'LifecycleEvent', 'CorrelationId', 'Steps')


def plan_to_document(plan: Plan) -> Dict[str, Any]:
    """Convert a plan to its export document."""
    document: Dict[str, Any] = {"SchemaVersion": SCHEMA_VERSION}
    document.update(plan.to_dict())
    return document


def export_plan(plan: Plan) -> str:
    """
    Render a plan as canonical JSON.

    Args:
        plan: Plan to export

    Returns:
        Pretty-printed JSON text ending with a newline
    """
    return json.dumps(plan_to_document(plan), indent=2, ensure_ascii=False) + "\n"


def write_plan(plan: Plan, path: Union[str, Path]) -> Path:
    """Write the plan export to a file (UTF-8, no BOM)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(export_plan(plan), encoding='utf-8')
    return path


def load_plan(text: Union[str, bytes]) -> Plan:
    """
    Parse a plan export back into a Plan.

    The returned plan carries no provider reference; pass providers to the
    executor when running it.

    Raises:
        ValidationError: If the text is not a valid plan export
    """
    if isinstance(text, bytes):
        text = text.decode('utf-8-sig')
    try:
        document = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValidationError.single(f"Plan export is not valid JSON: {e}")

    return plan_from_document(document)


def read_plan(path: Union[str, Path]) -> Plan:
    """Read a plan export file."""
    return load_plan(Path(path).read_bytes())


def plan_from_document(document: Any) -> Plan:
    """Convert an export document to a Plan."""
    if not isinstance(document, Mapping):
        raise ValidationError.single("Plan export must be a JSON object")
    assert_no_executable_content(document, "$")

    errors = []
    for field in REQUIRED_FIELDS:
        if field not in document:
            errors.append(ValidationFinding(f"missing required field '{field}'", '$'))
    if document.get('SchemaVersion') not in (None, SCHEMA_VERSION):
        errors.append(ValidationFinding(
            f"Unsupported SchemaVersion '{document.get('SchemaVersion')}'", '$.SchemaVersion'
        ))
    for section in ('Steps', 'OnFailureSteps'):
        steps = document.get(section, [])
        if not isinstance(steps, list):
            errors.append(ValidationFinding("must be a list", f"$.{section}"))
            continue
        for i, step in enumerate(steps):
            if not isinstance(step, Mapping) or 'Name' not in step or 'Type' not in step:
                errors.append(ValidationFinding("step requires 'Name' and 'Type'", f"$.{section}[{i}]"))
    if errors:
        raise ValidationError(errors)

    return Plan(
        workflow_name=document['WorkflowName'],
        lifecycle_event=document['LifecycleEvent'],
        correlation_id=document['CorrelationId'],
        actor=document.get('Actor'),
        request=dict(document.get('Request') or {}),
        steps=tuple(PlanStep.from_dict(s) for s in document['Steps']),
        on_failure_steps=tuple(PlanStep.from_dict(s) for s in document.get('OnFailureSteps') or []),
    )

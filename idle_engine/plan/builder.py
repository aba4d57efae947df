"""
Plan building: (workflow, request, providers) -> immutable Plan.

Building is pure. The only call made against providers is
``get_capabilities()``; no target system is touched, so building a plan is
always preview-safe.
"""

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any, List, Optional, Tuple, Union

from ..capabilities import DEFAULT_PROVIDER_ALIAS, CapabilityValidator
from ..exceptions import CapabilityError, ValidationError, ValidationFinding
from ..loader import WorkflowLoader
from ..models import LifecycleRequest, Plan, PlanStep, StepDefinition, WorkflowDefinition
from ..security.data_only import assert_no_executable_content
from ..variables.templates import TemplateResolver, build_template_context
from ..workflow.conditions import ConditionEvaluator

logger = logging.getLogger(__name__)

WorkflowSource = Union[WorkflowDefinition, Mapping, str, Path]


class PlanBuilder:
    """
    Builds validated, deterministic plans.

    Composes the loader, template resolver, condition validation and the
    capability validator.
    """

    def __init__(self, capability_catalog: Optional[Mapping] = None,
                 default_provider_alias: str = DEFAULT_PROVIDER_ALIAS):
        """
        Initialize the builder.

        Args:
            capability_catalog: Step type -> capabilities (defaults to the built-in catalog)
            default_provider_alias: Provider alias used when a step has no With.Provider
        """
        self.capability_catalog = capability_catalog
        self.default_provider_alias = default_provider_alias
        self.condition_evaluator = ConditionEvaluator()

    def build(
        self,
        workflow: WorkflowSource,
        request: LifecycleRequest,
        providers: Optional[Mapping[str, Any]] = None,
        policy: Optional[Mapping[str, Any]] = None,
    ) -> Plan:
        """
        Build a plan.

        Args:
            workflow: WorkflowDefinition, raw workflow mapping, or path to a workflow file
            request: Lifecycle request
            providers: Provider map (alias -> provider)
            policy: Optional mapping exposed to templates as Policy.*

        Returns:
            Immutable Plan

        Raises:
            ValidationError: Malformed workflow, executable content, bad templates or conditions
            CapabilityError: One or more steps lack provider capabilities (all findings reported)
        """
        if not isinstance(request, LifecycleRequest):
            raise ValidationError.single(
                f"request must be a LifecycleRequest, got {type(request).__name__}", "request"
            )
        providers = providers or {}
        if not isinstance(providers, Mapping):
            raise ValidationError.single("providers must be a mapping of alias to provider", "providers")
        if policy is not None:
            assert_no_executable_content(policy, "Policy")

        definition = self._load_workflow(workflow)
        logger.debug(f"Building plan for workflow '{definition.name}' "
                     f"(correlation id {request.correlation_id})")

        errors: List[ValidationFinding] = []
        if definition.lifecycle_event != request.lifecycle_event:
            errors.append(ValidationFinding(
                f"Workflow '{definition.name}' handles lifecycle event "
                f"'{definition.lifecycle_event}', request is '{request.lifecycle_event}'",
                "LifecycleEvent",
            ))

        plan_context = {
            "WorkflowName": definition.name,
            "LifecycleEvent": request.lifecycle_event,
            "CorrelationId": request.correlation_id,
            "Actor": request.actor,
        }
        template_context = build_template_context(request.to_context(), plan_context, policy)

        validator = CapabilityValidator(providers, self.capability_catalog)

        steps = self._build_steps(definition.steps, 'Steps', template_context, validator, errors)
        on_failure = self._build_steps(definition.on_failure_steps, 'OnFailureSteps',
                                       template_context, validator, errors)

        if errors:
            raise ValidationError(errors)

        if validator.findings:
            logger.error(f"Plan for workflow '{definition.name}' has "
                         f"{len(validator.findings)} missing capability finding(s)")
            raise CapabilityError(validator.findings)

        plan = Plan(
            workflow_name=definition.name,
            lifecycle_event=request.lifecycle_event,
            correlation_id=request.correlation_id,
            actor=request.actor,
            request=request.to_context(),
            steps=steps,
            on_failure_steps=on_failure,
            providers=providers,
        )
        logger.info(f"Built plan for workflow '{plan.workflow_name}' with "
                    f"{len(plan.steps)} step(s) and {len(plan.on_failure_steps)} OnFailure step(s)")
        return plan

    def _load_workflow(self, workflow: WorkflowSource) -> WorkflowDefinition:
        loader = WorkflowLoader()
        if isinstance(workflow, WorkflowDefinition):
            # Re-check: definitions can be constructed directly by the host
            return loader.load_dict(workflow.to_dict())
        if isinstance(workflow, (str, Path)):
            return loader.load(workflow)
        return loader.load_dict(workflow)

    def _build_steps(
        self,
        definitions: Tuple[StepDefinition, ...],
        section: str,
        template_context: Mapping,
        validator: CapabilityValidator,
        errors: List[ValidationFinding],
    ) -> Tuple[PlanStep, ...]:
        resolver = TemplateResolver()
        steps = []

        for index, definition in enumerate(definitions):
            path = f"{section}[{index}]"

            if definition.condition is not None:
                for message in self.condition_evaluator.validate(definition.condition,
                                                                 f"{path}.Condition"):
                    errors.append(ValidationFinding(f"Step '{definition.name}': {message}", path))

            try:
                with_ = resolver.resolve(definition.with_, template_context, f"{path}.With")
            except ValidationError as e:
                for finding in e.errors:
                    errors.append(ValidationFinding(
                        f"Step '{definition.name}': {finding.message}", finding.path
                    ))
                continue
            assert_no_executable_content(with_, f"{path}.With")

            try:
                required = validator.required_capabilities(definition.type,
                                                           definition.requires_capabilities)
            except ValueError as e:
                errors.append(ValidationFinding(f"Step '{definition.name}': {e}", path))
                continue

            alias = with_.get('Provider') or self.default_provider_alias
            validator.check_step(definition.name, required, alias)

            steps.append(PlanStep(
                name=definition.name,
                type=definition.type,
                with_=with_,
                condition=definition.condition,
                requires_capabilities=required,
                provider=alias,
                retry_profile=definition.retry_profile,
                auth_session_name=with_.get('AuthSessionName'),
                auth_session_options=dict(with_.get('AuthSessionOptions') or {}),
            ))

        return tuple(steps)

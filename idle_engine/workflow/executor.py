"""
Plan executor.

Runs a built plan once: primary steps fail fast, OnFailure steps run best
effort after a primary failure. Every run owns its state, event buffer and
auth adapter; the plan, providers, registry and broker are only read.
"""

import copy
import logging
import random
import threading
from collections.abc import Mapping
from typing import Any, List, Optional

from ..config import ExecutionOptions
from ..exceptions import OnFailureStepError, StepExecutionError, ValidationError
from ..exec.auth import AuthSessionAdapter
from ..exec.events import EventPipeline
from ..exec.retry import CancellableSleep, RetryPolicy
from ..models import ExecutionResult, OnFailureResult, Plan, PlanStep, StepResult
from ..security.redaction import Redactor
from ..state import RunState, StateWriteError
from ..steps.registry import StepContext, StepRegistry, normalize_output
from .conditions import ConditionEvaluator

logger = logging.getLogger(__name__)


class ExecutionContext:
    """
    Per-run execution context.

    Attributes:
        plan: Plan being executed
        providers: Effective provider map (alias -> provider)
        redactor: Redactor for this run's events, errors and logs
        events: Event pipeline
        auth: Auth session adapter
        state: Run state
        sleep: Cancellable wait used between retry attempts
    """

    def __init__(
        self,
        plan: Plan,
        providers: Mapping,
        event_sink: Any = None,
        auth_session_broker: Any = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.plan = plan
        self.providers = providers
        self.redactor = Redactor()
        self.events = EventPipeline(event_sink, self.redactor)
        self.auth = AuthSessionAdapter(
            auth_session_broker,
            correlation_id=plan.correlation_id,
            actor=plan.actor,
            redactor=self.redactor,
        )
        self.state = RunState()
        self.sleep = CancellableSleep(cancel_event)

    def condition_context(self) -> dict:
        """Plan, Request and committed State roots for condition evaluation."""
        return {
            'Plan': self.plan.metadata(),
            'Request': copy.deepcopy(self.plan.request),
            'State': self.state.snapshot(),
        }


class PlanExecutor:
    """
    Executes plans against providers through registered step handlers.

    The executor keeps no per-run state and may be shared between runs.
    """

    def __init__(self, step_registry: StepRegistry, options: Any = None,
                 rng: Optional[random.Random] = None):
        """
        Initialize executor.

        Args:
            step_registry: Registry mapping step types to handlers
            options: ExecutionOptions, or their PascalCase mapping form
            rng: Random source for retry jitter

        Raises:
            ValidationError: If the registry or options are invalid
        """
        if not isinstance(step_registry, StepRegistry):
            raise ValidationError.single(
                f"step_registry must be a StepRegistry, got {type(step_registry).__name__}",
                "step_registry",
            )
        if options is None:
            options = ExecutionOptions()
        elif isinstance(options, Mapping):
            options = ExecutionOptions.from_dict(options)
        elif not isinstance(options, ExecutionOptions):
            raise ValidationError.single(
                f"options must be ExecutionOptions or a mapping, got {type(options).__name__}",
                "options",
            )

        self.step_registry = step_registry
        self.options = options
        self.rng = rng
        self.condition_evaluator = ConditionEvaluator()

    def execute(
        self,
        plan: Plan,
        providers: Optional[Mapping[str, Any]] = None,
        event_sink: Any = None,
        auth_session_broker: Any = None,
        what_if: bool = False,
        cancel_event: Optional[threading.Event] = None,
    ) -> ExecutionResult:
        """
        Execute a plan once.

        Args:
            plan: Plan produced by the plan builder
            providers: Provider map overriding the one the plan was built with
            event_sink: Host object exposing write_event(event)
            auth_session_broker: Host object exposing acquire_auth_session(name, options)
            what_if: Preview only; no handler, auth or provider call is made
            cancel_event: Set to abort retry waits

        Returns:
            ExecutionResult with step results, OnFailure section and events

        Raises:
            ValidationError: If the plan or provider map is invalid
        """
        if not isinstance(plan, Plan):
            raise ValidationError.single(f"plan must be a Plan, got {type(plan).__name__}", "plan")
        if providers is None:
            providers = plan.providers or {}
        if not isinstance(providers, Mapping):
            raise ValidationError.single("providers must be a mapping of alias to provider", "providers")

        context = ExecutionContext(plan, providers, event_sink, auth_session_broker, cancel_event)
        events = context.events

        logger.info(f"Starting run of workflow '{plan.workflow_name}' "
                    f"(correlation id {plan.correlation_id}, {len(plan.steps)} steps)")
        events.emit("RunStarted", f"Run of workflow '{plan.workflow_name}' started", data={
            'WorkflowName': plan.workflow_name,
            'LifecycleEvent': plan.lifecycle_event,
            'CorrelationId': plan.correlation_id,
            'Actor': plan.actor,
            'StepCount': len(plan.steps),
            'WhatIf': bool(what_if),
        })

        if what_if:
            self._preview(context)
            events.emit("RunCompleted", "WhatIf preview completed", data={'Status': 'WhatIf'})
            return ExecutionResult(
                status="WhatIf",
                correlation_id=plan.correlation_id,
                actor=plan.actor,
                events=events.events,
                state=context.state.snapshot(),
            )

        results: List[StepResult] = []
        failed = False
        for step in plan.steps:
            result = self._run_step(context, step, on_failure=False)
            results.append(result)
            if result.status == "Failed":
                failed = True
                logger.error(f"Step '{step.name}' failed, stopping primary phase")
                break

        on_failure = OnFailureResult()
        if failed and plan.on_failure_steps:
            on_failure = self._run_on_failure(context)

        status = "Failed" if failed else "Completed"
        events.emit("RunCompleted", f"Run {status.lower()}", data={
            'Status': status,
            'OnFailureStatus': on_failure.status,
        })
        logger.info(f"Run of workflow '{plan.workflow_name}' finished with status {status}")

        return ExecutionResult(
            status=status,
            correlation_id=plan.correlation_id,
            actor=plan.actor,
            steps=results,
            on_failure=on_failure,
            events=events.events,
            state=context.state.snapshot(),
        )

    def _run_on_failure(self, context: ExecutionContext) -> OnFailureResult:
        """Run every OnFailure step regardless of earlier failures."""
        logger.info(f"Running {len(context.plan.on_failure_steps)} OnFailure steps")
        results = [self._run_step(context, step, on_failure=True)
                   for step in context.plan.on_failure_steps]
        if any(r.status == "Failed" for r in results):
            return OnFailureResult(status="PartiallyFailed", steps=results)
        return OnFailureResult(status="Completed", steps=results)

    def _run_step(self, context: ExecutionContext, step: PlanStep, on_failure: bool) -> StepResult:
        """
        Run a single step: condition, auth, handler under retry, outputs.

        Failures never raise; they are recorded on the returned StepResult.
        """
        error_class = OnFailureStepError if on_failure else StepExecutionError
        events = context.events

        try:
            should_run = self.condition_evaluator.evaluate(step.condition, context.condition_context())
        except ValueError as e:
            return self._fail(context, step, error_class(step.name, f"Condition evaluation failed: {e}"), 0)

        if not should_run:
            logger.info(f"Skipping step '{step.name}': condition not met")
            events.emit("StepSkipped", f"Step '{step.name}' skipped: condition not met", step.name,
                        {'Type': step.type})
            return StepResult(name=step.name, type=step.type, status="Skipped")

        events.emit("StepStarted", f"Step '{step.name}' started", step.name, {'Type': step.type})
        logger.info(f"Executing step '{step.name}' ({step.type})")

        handler = self.step_registry.get(step.type)
        if handler is None:
            return self._fail(context, step, error_class(
                step.name, f"No handler registered for step type '{step.type}'"), 0)

        # Sensitive parameter values are masked if a failure echoes them
        context.redactor.redact_data(step.with_)

        auth_session = None
        if step.auth_session_name:
            try:
                auth_session = context.auth.acquire(step.auth_session_name, step.auth_session_options)
            except Exception as e:
                return self._fail(context, step, error_class(
                    step.name, f"Auth session '{step.auth_session_name}' could not be acquired: {e}"), 0)

        step_context = StepContext(
            plan=context.plan.metadata(),
            request=copy.deepcopy(context.plan.request),
            state=context.state.snapshot(),
            providers=context.providers,
            auth_session=auth_session,
            emit=events.emit,
            step_name=step.name,
        )

        def on_retry(attempt: int, delay_ms: float, error: BaseException):
            events.emit("Debug", f"Step '{step.name}' attempt {attempt} failed transiently, retrying",
                        step.name, {
                            'Attempt': attempt,
                            'DelayMilliseconds': round(delay_ms),
                            'Error': context.redactor.redact_text(str(error)),
                        })

        policy = RetryPolicy(
            self.options.resolve_retry_profile(step.retry_profile),
            sleep=context.sleep,
            rng=self.rng,
        )
        outcome = policy.run(lambda: handler.invoke(step_context, copy.deepcopy(step)), on_retry=on_retry)

        if outcome.error is not None:
            message = f"Step '{step.name}' failed: {outcome.error}"
            if outcome.cancelled:
                message = f"Step '{step.name}' failed: retry cancelled after attempt {outcome.attempts}: {outcome.error}"
            error = error_class(step.name, message)
            error.__cause__ = outcome.error
            return self._fail(context, step, error, outcome.attempts)

        try:
            output = normalize_output(outcome.value)
            written = context.state.commit_outputs(step.name, output.outputs)
        except (TypeError, StateWriteError) as e:
            return self._fail(context, step, error_class(
                step.name, f"Step '{step.name}' returned invalid output: {e}"), outcome.attempts)

        events.emit("StepCompleted", f"Step '{step.name}' completed", step.name, {
            'Type': step.type,
            'Changed': output.changed,
            'Attempts': outcome.attempts,
        })
        logger.info(f"Step '{step.name}' completed (changed={output.changed}, attempts={outcome.attempts})")
        return StepResult(
            name=step.name,
            type=step.type,
            status="Completed",
            changed=output.changed,
            attempts=outcome.attempts,
            outputs=context.redactor.redact_data(written),
        )

    def _fail(self, context: ExecutionContext, step: PlanStep, error: StepExecutionError,
              attempts: int) -> StepResult:
        """Record a step failure as a redacted StepResult and StepFailed event."""
        message = context.redactor.redact_text(str(error))
        context.events.emit("StepFailed", message, step.name, {
            'Error': message,
            'ErrorType': type(error).__name__,
            'Attempts': attempts,
        })
        logger.error(message)
        return StepResult(
            name=step.name,
            type=step.type,
            status="Failed",
            error=message,
            attempts=attempts,
        )

    def _preview(self, context: ExecutionContext) -> None:
        """WhatIf: evaluate conditions against empty state and report what would run."""
        for step in context.plan.steps:
            try:
                should_run = self.condition_evaluator.evaluate(step.condition, context.condition_context())
            except ValueError as e:
                context.events.emit("Debug", f"Step '{step.name}' condition could not be evaluated",
                                    step.name, {'Error': str(e)})
                continue

            if should_run:
                context.events.emit("Debug", f"Step '{step.name}' would run", step.name, {
                    'Type': step.type,
                    'Provider': step.provider,
                    'RequiresCapabilities': list(step.requires_capabilities),
                })
            else:
                context.events.emit("StepSkipped", f"Step '{step.name}' skipped: condition not met",
                                    step.name, {'Type': step.type})

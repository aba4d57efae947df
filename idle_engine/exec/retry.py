"""
Retry policy for step handler invocations.
Bounded attempts with exponential backoff and jitter; only transient
failures are retried.
"""

import logging
import random
import threading
from dataclasses import dataclass
from collections.abc import Mapping
from typing import Any, Callable, List, Optional

from ..exceptions import TransientError, ValidationError, ValidationFinding

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryProfile:
    """
    Named retry configuration.

    Attributes:
        max_attempts: Total attempts including the first (1 = no retries)
        initial_delay_milliseconds: Delay before the second attempt
        backoff_factor: Multiplier applied per further attempt
        max_delay_milliseconds: Upper bound for any single delay
        jitter_ratio: Uniform random adjustment of +/- this share of the delay
    """
    max_attempts: int = 3
    initial_delay_milliseconds: int = 250
    backoff_factor: float = 2.0
    max_delay_milliseconds: int = 5000
    jitter_ratio: float = 0.2

    FIELDS = {
        'MaxAttempts': 'max_attempts',
        'InitialDelayMilliseconds': 'initial_delay_milliseconds',
        'BackoffFactor': 'backoff_factor',
        'MaxDelayMilliseconds': 'max_delay_milliseconds',
        'JitterRatio': 'jitter_ratio',
    }

    def validate(self) -> List[str]:
        """
        Validate profile values.

        Returns:
            List of validation error messages (empty if valid)
        """
        errors = []
        if not _is_int(self.max_attempts) or self.max_attempts < 1:
            errors.append("MaxAttempts must be an integer >= 1")
        if not _is_number(self.initial_delay_milliseconds) or self.initial_delay_milliseconds < 0:
            errors.append("InitialDelayMilliseconds must be >= 0")
        if not _is_number(self.backoff_factor) or self.backoff_factor < 1:
            errors.append("BackoffFactor must be >= 1.0")
        if not _is_number(self.max_delay_milliseconds) or self.max_delay_milliseconds < 0:
            errors.append("MaxDelayMilliseconds must be >= 0")
        if not _is_number(self.jitter_ratio) or not 0 <= self.jitter_ratio <= 1:
            errors.append("JitterRatio must be between 0 and 1")
        return errors

    @classmethod
    def from_dict(cls, data: Any, path: str = "RetryProfile") -> "RetryProfile":
        """
        Create a profile from its PascalCase mapping form.

        Raises:
            ValidationError: If keys are unknown or values are invalid
        """
        if not isinstance(data, Mapping):
            raise ValidationError.single("retry profile must be a mapping", path)

        errors = [ValidationFinding(f"Unknown field '{key}'", path)
                  for key in data.keys() if key not in cls.FIELDS]
        kwargs = {cls.FIELDS[key]: value for key, value in data.items() if key in cls.FIELDS}
        profile = cls(**kwargs)
        errors.extend(ValidationFinding(message, path) for message in profile.validate())
        if errors:
            raise ValidationError(errors)
        return profile

    def to_dict(self) -> dict:
        return {key: getattr(self, attr) for key, attr in self.FIELDS.items()}


# Built-in fallback when no profile applies
NO_RETRY = RetryProfile(max_attempts=1, initial_delay_milliseconds=0,
                        max_delay_milliseconds=0, jitter_ratio=0.0)


def is_transient(error: BaseException) -> bool:
    """
    Check whether a failure is marked transient by its provider.

    A failure is transient when it is a TransientError or carries a
    ``transient``/``is_transient`` attribute set to True, on the error itself
    or anywhere along its explicit cause chain (``raise ... from ...``). The
    implicit ``__context__`` of an error raised while handling another one is
    not followed.
    """
    seen = set()
    current: Optional[BaseException] = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, TransientError):
            return True
        if getattr(current, 'transient', False) is True or getattr(current, 'is_transient', False) is True:
            return True
        current = current.__cause__
    return False


class CancellableSleep:
    """Time-bounded wait that returns early when the cancel event is set."""

    def __init__(self, cancel_event: Optional[threading.Event] = None):
        self.cancel_event = cancel_event or threading.Event()

    def __call__(self, seconds: float) -> bool:
        """
        Wait for ``seconds``.

        Returns:
            True if the full delay elapsed, False if cancelled
        """
        if self.cancel_event.is_set():
            return False
        if seconds <= 0:
            return True
        return not self.cancel_event.wait(seconds)


@dataclass
class RetryOutcome:
    """Result of running an operation under a retry policy."""
    value: Any = None
    error: Optional[BaseException] = None
    attempts: int = 0
    cancelled: bool = False

    @property
    def succeeded(self) -> bool:
        return self.error is None


class RetryPolicy:
    """Runs an operation with bounded attempts and exponential backoff."""

    def __init__(
        self,
        profile: RetryProfile = NO_RETRY,
        sleep: Optional[Callable[[float], bool]] = None,
        rng: Optional[random.Random] = None,
    ):
        """
        Initialize the policy.

        Args:
            profile: Effective retry profile
            sleep: Wait primitive taking seconds and returning False when cancelled
            rng: Random source for jitter
        """
        self.profile = profile
        self.sleep = sleep or CancellableSleep()
        self.rng = rng or random.Random()

    def delay_ms(self, attempt: int) -> float:
        """
        Delay to wait after failed attempt number ``attempt`` (1-based).

        min(MaxDelay, InitialDelay * BackoffFactor^(attempt-1)), then adjusted
        by a uniform jitter of +/- JitterRatio.
        """
        profile = self.profile
        delay = profile.initial_delay_milliseconds
        for _ in range(attempt - 1):
            if delay >= profile.max_delay_milliseconds:
                break
            delay *= profile.backoff_factor
        delay = min(profile.max_delay_milliseconds, delay)
        if profile.jitter_ratio > 0 and delay > 0:
            delay = delay * (1 + self.rng.uniform(-profile.jitter_ratio, profile.jitter_ratio))
        return max(0.0, delay)

    def should_retry(self, error: BaseException, attempt: int) -> bool:
        """
        Determine if a retry should be attempted.

        Args:
            error: Failure of the last attempt
            attempt: Number of attempts made so far (1-based)
        """
        if attempt >= self.profile.max_attempts:
            return False
        return is_transient(error)

    def run(self, operation: Callable[[], Any],
            on_retry: Optional[Callable[[int, float, BaseException], None]] = None) -> RetryOutcome:
        """
        Run ``operation`` until it succeeds or the policy gives up.

        Args:
            operation: Zero-argument callable
            on_retry: Called with (failed attempt, delay ms, error) before each wait

        Returns:
            RetryOutcome with the value or the final error
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                return RetryOutcome(value=operation(), attempts=attempt)
            except Exception as e:
                if not self.should_retry(e, attempt):
                    return RetryOutcome(error=e, attempts=attempt)

                delay = self.delay_ms(attempt)
                if on_retry is not None:
                    on_retry(attempt, delay, e)
                logger.debug(f"Transient failure on attempt {attempt}/{self.profile.max_attempts}, "
                             f"retrying in {delay:.0f}ms")
                if not self.sleep(delay / 1000.0):
                    logger.info(f"Retry wait cancelled after attempt {attempt}")
                    return RetryOutcome(error=e, attempts=attempt, cancelled=True)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)

"""Base step with retry policy logic."""

import logging
import time
from typing import Any, Callable, Dict, Tuple, Type

from tenacity import RetryCallState, Retrying, retry_if_not_exception_type, stop_after_attempt

logger = logging.getLogger(__name__)


class StepFailedError(Exception):
    """Raised when a step exhausts its retry budget or hits a non-retryable error."""

    def __init__(self, step_name: str, attempts: int, cause: BaseException):
        self.step_name = step_name
        self.attempts = attempts
        self.cause = cause
        super().__init__(f"Step {step_name} failed after {attempts} attempt(s): {cause}")


class BaseStep:
    """Base class for durable workflow steps.

    Subclasses implement ``_run`` and ``_wait``. ``execute`` applies the
    step's retry policy; the orchestrator owns committing the result.
    """

    name: str = ""
    max_attempts: int = 1
    no_retry_on: Tuple[Type[BaseException], ...] = ()

    def __init__(self, sleep: Callable[[float], None] = time.sleep):
        """Initialize base step."""
        self.sleep = sleep

    def _wait(self):
        """Tenacity wait strategy between attempts."""
        raise NotImplementedError

    def _before_sleep(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0
        logger.warning(
            f"Step {self.name} attempt {retry_state.attempt_number}/{self.max_attempts} failed: {exc}; "
            f"retrying in {delay:.0f}s"
        )

    def execute(self, payload: Dict[str, Any]) -> Tuple[str, int]:
        """
        Execute the step with retries.

        Args:
            payload: Instance context (instance id, reference keys, prompt)

        Returns:
            Tuple of (durable result, attempts used)

        Raises:
            StepFailedError: If every attempt failed, or a non-retryable error occurred
        """
        attempts = 0
        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self._wait(),
            retry=retry_if_not_exception_type(self.no_retry_on),
            sleep=self.sleep,
            before_sleep=self._before_sleep,
            reraise=True,
        )
        try:
            for attempt in retrying:
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    logger.info(f"Step {self.name} attempt {attempts}/{self.max_attempts}")
                    result = self._run(payload)
        except Exception as e:
            logger.error(f"Step {self.name} failed: {e}")
            raise StepFailedError(self.name, attempts, e) from e

        logger.info(f"Step {self.name} succeeded")
        return result, attempts

    def _run(self, payload: Dict[str, Any]) -> str:
        """
        Run the step logic (to be implemented by subclasses).

        Args:
            payload: Instance context

        Returns:
            Small string result to commit durably
        """
        raise NotImplementedError

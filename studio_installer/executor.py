from __future__ import annotations

import functools
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from .context import InstallerContext
from .errors import InvalidIdentifier, StepFailed
from .logging_utils import log_step, log_success
from .state_store import validate_identifier

logger = logging.getLogger(__name__)

# A unit of work fails by raising or by returning False.
WorkFn = Callable[[InstallerContext], Optional[bool]]


class StepStatus(str, Enum):
    SKIPPED = "skipped"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class StepResult:
    step_id: str
    status: StepStatus
    reason: Optional[str] = None
    returncode: Optional[int] = None

    @property
    def failed(self) -> bool:
        return self.status is StepStatus.FAILED


class StepExecutor:
    """Runs one named step at most once across runs.

    The executor has no notion of severity and never retries; callers decide
    what a failure means.
    """

    def __init__(self, ctx: InstallerContext) -> None:
        self.ctx = ctx

    def run_step(self, step_id: str, work: WorkFn, *, fingerprint: Optional[str] = None) -> StepResult:
        """Run work under step_id unless it already completed.

        A step recorded with a different fingerprint (for example an edited
        script) counts as not completed and runs again.
        """

        try:
            validate_identifier("step id", step_id)
        except InvalidIdentifier as e:
            logger.error("Step %r failed: %s", step_id, e)
            return StepResult(step_id, StepStatus.FAILED, str(e))
        state = self.ctx.state

        if state.is_done(step_id):
            recorded = state.completion_fingerprint(step_id)
            if fingerprint is not None and recorded is not None and recorded != fingerprint:
                logger.warning("Step %s changed since it completed, running it again", step_id)
            elif not self.ctx.force:
                logger.info("Skipping step %s (already completed)", step_id)
                return StepResult(step_id, StepStatus.SKIPPED)
            else:
                logger.info("Re-running step %s (force mode)", step_id)

        log_step(logger, f"Running step {step_id}")
        try:
            outcome = work(self.ctx)
        except Exception as e:
            reason = str(e).strip() or e.__class__.__name__
            returncode = e.returncode if isinstance(e, StepFailed) else None
            logger.error("Step %s failed: %s", step_id, reason)
            logger.debug("Traceback for step %s", step_id, exc_info=True)
            return StepResult(step_id, StepStatus.FAILED, reason, returncode)

        if outcome is False:
            reason = "step reported failure"
            logger.error("Step %s failed: %s", step_id, reason)
            return StepResult(step_id, StepStatus.FAILED, reason)

        state.mark_done(step_id, fingerprint=fingerprint)
        log_success(logger, "Step %s completed", step_id)
        return StepResult(step_id, StepStatus.SUCCEEDED)


def with_retry(
    work: WorkFn,
    *,
    attempts: int = 3,
    delay: float = 5.0,
    sleep: Callable[[float], None] = time.sleep,
) -> WorkFn:
    """Wrap a unit of work so it is retried on failure.

    The last failure is re-raised (or False returned) once attempts run out.
    """

    if attempts < 1:
        raise ValueError("attempts must be >= 1")

    @functools.wraps(work)
    def wrapper(ctx: InstallerContext) -> Optional[bool]:
        for attempt in range(1, attempts + 1):
            try:
                outcome = work(ctx)
            except Exception as e:
                if attempt == attempts:
                    raise
                logger.warning("Attempt %d/%d failed (%s), retrying in %ss", attempt, attempts, e, delay)
            else:
                if outcome is not False or attempt == attempts:
                    return outcome
                logger.warning("Attempt %d/%d failed, retrying in %ss", attempt, attempts, delay)
            sleep(delay)
        return False

    return wrapper

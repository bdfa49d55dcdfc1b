from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Literal, Optional, Sequence

from .context import InstallerContext
from .errors import InvalidIdentifier, UnknownPhase
from .executor import StepExecutor, StepStatus
from .lib.command import run_cmd
from .lib.env import PATHS
from .logging_utils import log_section, log_success
from .package_registry import format_summary
from .steps import Step, discover_script_steps

logger = logging.getLogger(__name__)

INIT = "init"
COMPLETE = "complete"
PHASE_ORDER = (INIT, "studio", "plasma", "apps", "tweaks", COMPLETE)

PHASE_TITLES = {
    "init": "System Initialization",
    "studio": "Studio Setup",
    "plasma": "KDE Plasma Installation",
    "apps": "Applications Installation",
    "tweaks": "System Tweaks",
}


def validate_phase(name: str) -> str:
    if name not in PHASE_ORDER:
        raise UnknownPhase(f"Unknown installation phase: {name!r} (expected one of {', '.join(PHASE_ORDER)})")
    return name


def next_phase(name: str) -> str:
    idx = PHASE_ORDER.index(validate_phase(name))
    return PHASE_ORDER[min(idx + 1, len(PHASE_ORDER) - 1)]


@dataclass
class Phase:
    """An ordered group of steps: the scripts in script_dir, then any Python steps."""

    name: str
    script_dir: Optional[str] = None
    steps: List[Step] = field(default_factory=list)
    enabled: bool = True

    @property
    def title(self) -> str:
        return PHASE_TITLES.get(self.name, self.name)

    def load_steps(self) -> List[Step]:
        found: List[Step] = []
        if self.script_dir is not None:
            found.extend(discover_script_steps(self.name, self.script_dir))
        return [*found, *self.steps]


@dataclass(frozen=True)
class PhaseOutcome:
    kind: Literal["continue", "halt", "reboot"]
    reason: Optional[str] = None

    @classmethod
    def proceed(cls) -> "PhaseOutcome":
        return cls("continue")

    @classmethod
    def halt(cls, reason: str) -> "PhaseOutcome":
        return cls("halt", reason)

    @classmethod
    def reboot(cls, reason: str) -> "PhaseOutcome":
        return cls("reboot", reason)


RunOutcome = Literal["complete", "reboot", "failed"]


@dataclass
class RunResult:
    exit_code: int
    outcome: RunOutcome
    phase: str
    reason: Optional[str] = None
    ran_steps: List[str] = field(default_factory=list)
    skipped_steps: List[str] = field(default_factory=list)
    failed_steps: List[str] = field(default_factory=list)


class Orchestrator:
    """Runs phases in order from the persisted pointer, surviving reboots.

    The pointer names the phase to run next. It moves forward only when a
    phase finishes (or is disabled), so a failed phase is retried on the next
    invocation and its completed steps are skipped by the executor.
    """

    def __init__(
        self,
        ctx: InstallerContext,
        phases: Sequence[Phase],
        *,
        system_reboot_marker: str = PATHS.system_reboot_marker,
    ) -> None:
        self.ctx = ctx
        self.phases: Dict[str, Phase] = {p.name: p for p in phases}
        missing = [n for n in PHASE_ORDER if n != COMPLETE and n not in self.phases]
        if missing:
            raise ValueError(f"Missing phase definitions: {', '.join(missing)}")
        self.executor = StepExecutor(ctx)
        self.system_reboot_marker = Path(system_reboot_marker)
        self._result = RunResult(exit_code=0, outcome="complete", phase=INIT)

    def current_phase(self) -> str:
        stored = self.ctx.state.get_phase()
        if stored is None:
            return INIT
        if stored not in PHASE_ORDER:
            logger.error("Unknown installation phase: %s", stored)
            logger.info("Setting phase to '%s' and restarting", INIT)
            self.set_phase(INIT)
            return INIT
        return stored

    def set_phase(self, name: str) -> None:
        self.ctx.state.set_phase(validate_phase(name))
        logger.info("Installation phase set to: %s", name)

    def run(self) -> RunResult:
        state = self.ctx.state
        if state.reboot_pending():
            logger.info("Resuming after reboot (%s)", state.reboot_reason() or "no reason recorded")
            state.clear_reboot()
        start = self.current_phase()
        logger.info("Starting installation from phase: %s", start)
        return self.run_from(start)

    def run_from(self, phase: str) -> RunResult:
        start = PHASE_ORDER.index(validate_phase(phase))
        self._result = RunResult(exit_code=0, outcome="complete", phase=phase)

        for name in PHASE_ORDER[start:]:
            if name == COMPLETE:
                self.set_phase(COMPLETE)
                self._phase_complete()
                return self._finish(0, "complete", COMPLETE)

            self.set_phase(name)
            outcome = self._run_phase(self.phases[name])

            if outcome.kind == "halt":
                logger.error("Installation failed at %s phase: %s", name, outcome.reason)
                if self.ctx.reboot_requested:
                    pending = "; ".join(self.ctx.take_reboot_reasons())
                    self.ctx.state.mark_reboot(pending)
                    logger.warning("A reboot was also requested before the failure: %s", pending)
                return self._finish(1, "failed", name, outcome.reason)

            following = next_phase(name)
            self.set_phase(following)
            if outcome.kind == "reboot":
                return self._halt_for_reboot(following, outcome.reason or "reboot requested")

        raise AssertionError("phase sequence did not reach complete")

    def _finish(self, code: int, outcome: RunOutcome, phase: str, reason: Optional[str] = None) -> RunResult:
        self._result.exit_code = code
        self._result.outcome = outcome
        self._result.phase = phase
        self._result.reason = reason
        return self._result

    def _run_phase(self, phase: Phase) -> PhaseOutcome:
        number = PHASE_ORDER.index(phase.name) + 1
        if not phase.enabled:
            logger.info("Skipping %s (disabled)", phase.title)
            return PhaseOutcome.proceed()

        log_section(logger, f"Phase {number}: {phase.title}")
        try:
            steps = phase.load_steps()
        except (FileNotFoundError, InvalidIdentifier) as e:
            logger.error("%s failed: %s", phase.title, e)
            return PhaseOutcome.halt(str(e))

        for step in steps:
            result = self.executor.run_step(step.step_id, step.run, fingerprint=step.fingerprint)
            if result.status is StepStatus.SKIPPED:
                self._result.skipped_steps.append(step.step_id)
                continue
            if not result.failed:
                self._result.ran_steps.append(step.step_id)
                continue

            self._result.failed_steps.append(step.step_id)
            self.ctx.state.record_error(step.step_id, phase.name, result.reason or "failed", result.returncode)
            if self.ctx.config.is_critical(step.step_id, step.critical):
                logger.error("Critical step %s failed in phase %s", step.step_id, phase.name)
                return PhaseOutcome.halt(f"critical step {step.step_id} failed: {result.reason}")

            logger.warning("Non-critical step %s failed in phase %s: %s", step.step_id, phase.name, result.reason)
            if self.ctx.interactive and not self.ctx.confirm("Continue with installation despite errors?", False):
                logger.error("Installation aborted by user")
                return PhaseOutcome.halt(f"aborted by operator after step {step.step_id} failed")

        if self.ctx.config.honor_system_reboot_marker and self.system_reboot_marker.exists():
            self.ctx.request_reboot(f"System reboot required file found ({self.system_reboot_marker})")

        if self.ctx.reboot_requested:
            return PhaseOutcome.reboot("; ".join(self.ctx.take_reboot_reasons()))

        log_success(logger, "%s completed successfully", phase.title)
        return PhaseOutcome.proceed()

    def _halt_for_reboot(self, following: str, reason: str) -> RunResult:
        self.ctx.state.mark_reboot(reason)
        logger.warning("System reboot required: %s", reason)

        if self.ctx.config.auto_reboot:
            logger.info("Auto-reboot is enabled. Rebooting now; installation resumes at phase '%s'", following)
            run_cmd(["sync"], check=False, dry_run=self.ctx.dry_run)
            r = run_cmd(["reboot"], check=False, dry_run=self.ctx.dry_run)
            if not r.ok:
                logger.warning("Reboot command failed (%s); please reboot manually", r.returncode)
        else:
            logger.warning("Please reboot the system using 'sudo reboot'")
            logger.info("After reboot, run the installer again to continue from phase '%s'", following)

        return self._finish(0, "reboot", following, reason)

    def _phase_complete(self) -> None:
        log_section(logger, "Installation Complete")
        log_success(logger, "All installation phases completed successfully!")
        for line in format_summary(self.ctx.packages.summary()):
            logger.info("%s", line)
        logger.info("Please reboot to ensure all changes take effect.")

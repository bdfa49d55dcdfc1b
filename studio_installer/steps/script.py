from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from ..context import InstallerContext
from ..errors import StepFailed
from ..lib.command import run_cmd
from ..state_store import DEPENDENCY_DIR, validate_identifier

logger = logging.getLogger(__name__)

REBOOT_REQUIRED_MARKER = "# REBOOT_REQUIRED"
BEST_EFFORT_MARKER = "# BEST_EFFORT"
CRITICAL_MARKER = "# CRITICAL"


def _bool_env(value: bool) -> str:
    return "true" if value else "false"


def read_header_markers(path: Path) -> Dict[str, bool]:
    markers = {"reboot": False, "best_effort": False, "critical": False}
    for line in path.read_text(encoding="utf-8", errors="replace").splitlines():
        stripped = line.strip()
        if stripped == REBOOT_REQUIRED_MARKER:
            markers["reboot"] = True
        elif stripped == BEST_EFFORT_MARKER:
            markers["best_effort"] = True
        elif stripped == CRITICAL_MARKER:
            markers["critical"] = True
    return markers


def script_fingerprint(path: Path) -> str:
    return "sha256:" + hashlib.sha256(path.read_bytes()).hexdigest()


@dataclass(frozen=True)
class ScriptStep:
    """An external shell script run as one step.

    Success is exit code 0. A script may ask for a reboot either with a
    "# REBOOT_REQUIRED" header line or by creating $STATE_DIR/reboot_required.
    Completion is recorded with a hash of the script, so an edited script
    runs again.
    """

    step_id: str
    path: Path
    critical: Optional[bool] = None
    reboot_after: bool = False
    fingerprint: Optional[str] = None

    @classmethod
    def from_path(cls, phase: str, path: Path) -> "ScriptStep":
        markers = read_header_markers(path)
        critical: Optional[bool] = None
        if markers["critical"]:
            critical = True
        elif markers["best_effort"]:
            critical = False
        return cls(
            step_id=validate_identifier("step id", f"{phase}_{path.stem}"),
            path=path,
            critical=critical,
            reboot_after=markers["reboot"],
            fingerprint=script_fingerprint(path),
        )

    def environment(self, ctx: InstallerContext) -> Dict[str, str]:
        state_dir = str(ctx.state.root)
        return {
            "STATE_DIR": state_dir,
            "DEPENDENCY_DIR": str(ctx.state.root / DEPENDENCY_DIR),
            "LOG_DIR": ctx.config.log_dir,
            "FORCE_MODE": _bool_env(ctx.force),
            "INTERACTIVE": _bool_env(ctx.interactive),
            "DRY_RUN": _bool_env(ctx.dry_run),
            "INSTALLER_STEP_ID": self.step_id,
        }

    def run(self, ctx: InstallerContext) -> Optional[bool]:
        if not self.path.is_file():
            raise StepFailed(self.step_id, f"Script not found: {self.path}")

        marker_before = ctx.state.reboot_pending()
        r = run_cmd(
            ["bash", str(self.path)],
            check=False,
            env=self.environment(ctx),
            cwd=str(self.path.parent),
            dry_run=ctx.dry_run,
        )
        if not r.ok:
            detail = r.tail()
            msg = f"Script {self.path.name} failed with exit code {r.returncode}"
            raise StepFailed(self.step_id, f"{msg}\n{detail}" if detail else msg, returncode=r.returncode)

        if not marker_before and ctx.state.reboot_pending():
            reason = ctx.state.reboot_reason() or ""
            ctx.state.clear_reboot()
            ctx.request_reboot(reason or f"Reboot requested by {self.path.name}")
        elif self.reboot_after:
            ctx.request_reboot(f"Reboot required after running {self.path.name}")
        return True


def discover_script_steps(phase: str, directory: str) -> List[ScriptStep]:
    """All *.sh scripts in directory, in sorted order, as steps of phase."""

    d = Path(directory)
    if not d.is_dir():
        raise FileNotFoundError(f"Directory not found: {d}")
    scripts = sorted(p for p in d.glob("*.sh") if p.is_file())
    if not scripts:
        logger.warning("No scripts found in: %s", d)
    return [ScriptStep.from_path(phase, p) for p in scripts]

from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import Dict, List, Optional, Sequence

from .config import InstallerConfig, load_config
from .context import Confirm, build_context
from .errors import InvalidIdentifier
from .lib.pkg import AptInstaller
from .logging_utils import LOG_MODES, configure_logging, log_section
from .package_registry import PackageInstaller, PackageRegistry, format_summary
from .pipeline import COMPLETE, PHASE_ORDER, Orchestrator, Phase, RunResult
from .state_store import StateStore
from .steps import Step

logger = logging.getLogger(__name__)

SKIPPABLE_PHASES = ("studio", "plasma", "apps", "tweaks")
MAX_STATUS_ERRORS = 5


def build_phases(
    config: InstallerConfig,
    extra_steps: Optional[Dict[str, Sequence[Step]]] = None,
) -> List[Phase]:
    extra = extra_steps or {}
    return [
        Phase(
            name=name,
            script_dir=config.phase_dir(name),
            steps=list(extra.get(name, [])),
            enabled=config.phase_enabled(name),
        )
        for name in PHASE_ORDER
        if name != COMPLETE
    ]


def _log_configuration(config: InstallerConfig) -> None:
    log_section(logger, "Installation Configuration")
    logger.info("Interactive Mode: %s", config.interactive)
    logger.info("Force Mode: %s", config.force)
    logger.info("Dry Run: %s", config.dry_run)
    for name in SKIPPABLE_PHASES:
        logger.info("Install %s: %s", name.capitalize(), config.phase_enabled(name))
    logger.info("State directory: %s", config.state_dir)
    logger.info("Script root: %s", config.script_root)


def run(
    config: InstallerConfig,
    *,
    start_at: Optional[str] = None,
    extra_steps: Optional[Dict[str, Sequence[Step]]] = None,
    installer: Optional[PackageInstaller] = None,
    confirm: Optional[Confirm] = None,
    argv: Optional[Sequence[str]] = None,
) -> RunResult:
    """Run the installer from the persisted phase (or start_at), persisting progress."""

    configure_logging(config.log_dir, config.log_mode, argv=argv)
    _log_configuration(config)

    ctx = build_context(config, installer=installer, confirm=confirm)
    orchestrator = Orchestrator(ctx, build_phases(config, extra_steps))
    if start_at is not None:
        orchestrator.set_phase(start_at)

    try:
        result = orchestrator.run()
    except KeyboardInterrupt:
        logger.warning(
            "Installation interrupted; run the installer again to resume from phase '%s'",
            orchestrator.current_phase(),
        )
        raise
    except Exception:
        logger.exception("Installer failed")
        raise

    logger.info(
        "Run finished: outcome=%s phase=%s ran=%d skipped=%d failed=%d",
        result.outcome,
        result.phase,
        len(result.ran_steps),
        len(result.skipped_steps),
        len(result.failed_steps),
    )
    if result.outcome == "failed":
        failed_step = result.failed_steps[-1] if result.failed_steps else "none"
        logger.error("Installation stopped at phase %s (failed step: %s): %s", result.phase, failed_step, result.reason)
    return result


def show_status(config: InstallerConfig) -> int:
    store = StateStore(config.state_dir)
    registry = PackageRegistry(store, AptInstaller())

    print(f"Installation phase: {store.get_phase() or 'init (not started)'}")
    if store.reboot_pending():
        print(f"Reboot required: yes ({store.reboot_reason() or 'no reason recorded'})")
    else:
        print("Reboot required: no")
    completed = store.completed_steps()
    print(f"Completed steps ({len(completed)}):")
    for step_id in completed:
        print(f"  {step_id}")
    errors = store.errors()
    if errors:
        print(f"Recorded failures ({len(errors)}):")
        for name in errors[-MAX_STATUS_ERRORS:]:
            details = store.error_details(name)
            message = (details.get("message") or "").splitlines()
            print(
                f"  {details.get('timestamp', name)} {details.get('phase', '?')}/{details.get('step', '?')}"
                f" exit={details.get('exit_code', '-')}: {message[0] if message else ''}"
            )
    for line in format_summary(registry.summary()):
        print(line)
    return 0


def reset_step(config: InstallerConfig, step_id: str) -> int:
    store = StateStore(config.state_dir, dry_run=config.dry_run)
    if store.reset(step_id):
        if config.dry_run:
            print(f"[DRY RUN] Would reset step {step_id}")
            return 0
        print(f"Reset step {step_id}; it will run again on the next invocation")
    else:
        print(f"Step {step_id} was not marked as completed, no action needed")
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="studio-installer",
        description="Provision an Ubuntu Server install into a KDE Plasma audio workstation, phase by phase.",
    )
    p.add_argument("--config", default=None, help="Installer config (YAML)")
    p.add_argument("--non-interactive", action="store_true", default=None, help="Non-interactive mode (no prompts)")
    p.add_argument("--force", action="store_true", default=None, help="Re-run steps even if marked completed")
    for name in SKIPPABLE_PHASES:
        p.add_argument(f"--no-{name}", action="store_true", help=f"Skip the {name} phase")
    p.add_argument(
        "--from",
        dest="start_at",
        choices=PHASE_ORDER,
        default=None,
        help="Start from a specific phase",
    )
    p.add_argument("--state-dir", default=None, help="State directory")
    p.add_argument("--log-dir", default=None, help="Log directory")
    p.add_argument("--script-root", default=None, help="Directory holding the phase script directories")
    p.add_argument("--log-mode", choices=LOG_MODES, default=None, help="Console verbosity")
    p.add_argument("--dry-run", action="store_true", default=None, help="Log commands without running them")
    p.add_argument("--auto-reboot", action="store_true", default=None, help="Reboot automatically when required")
    p.add_argument("--no-root-check", action="store_true", help="Do not require root privileges")
    p.add_argument("--status", action="store_true", help="Show installation progress and exit")
    p.add_argument("--reset-step", metavar="STEP_ID", default=None, help="Mark a step as not completed and exit")
    return p


def main(argv: Optional[list[str]] = None) -> int:
    p = build_parser()
    args = p.parse_args(argv)

    try:
        config = load_config(args.config)
    except (FileNotFoundError, ValueError) as e:
        p.error(f"cannot load config: {e}")

    config = config.with_overrides(
        paths={"state_dir": args.state_dir, "log_dir": args.log_dir, "script_root": args.script_root},
        installer={
            "interactive": False if args.non_interactive else None,
            "force": args.force,
            "dry_run": args.dry_run,
            "auto_reboot": args.auto_reboot,
            "require_root": False if args.no_root_check else None,
        },
        logging={"mode": args.log_mode},
        disabled_phases=[name for name in SKIPPABLE_PHASES if getattr(args, f"no_{name}")],
    )

    if args.status:
        return show_status(config)
    if args.reset_step:
        try:
            return reset_step(config, args.reset_step)
        except InvalidIdentifier as e:
            p.error(str(e))

    if config.require_root and os.geteuid() != 0:
        print("ERROR: This installer must be run as root (use sudo, or --no-root-check)", file=sys.stderr)
        return 1

    try:
        result = run(config, start_at=args.start_at, argv=argv)
    except KeyboardInterrupt:
        return 130
    return result.exit_code


if __name__ == "__main__":
    raise SystemExit(main())

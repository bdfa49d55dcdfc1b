from __future__ import annotations

import logging
import os
import sys
import time
from pathlib import Path
from typing import Optional, Sequence

from .lib.env import PATHS

DEFAULT_LOG_DIR = PATHS.log_dir_default
LOG_BASENAME = "studio-installer"

SUCCESS = 25
logging.addLevelName(SUCCESS, "SUCCESS")

LOG_MODES = ("full", "normal", "minimal", "quiet")

_MODE_THRESHOLDS = {
    "full": logging.DEBUG,
    "normal": logging.INFO,
    "minimal": SUCCESS,
    "quiet": logging.WARNING,
}


class ConsoleModeFilter(logging.Filter):
    """Decides which records are echoed to the console for a verbosity mode.

    full    -> everything
    normal  -> everything but DEBUG
    minimal -> SUCCESS, WARNING, ERROR
    quiet   -> WARNING, ERROR
    """

    def __init__(self, mode: str) -> None:
        super().__init__()
        self.mode = mode
        self.threshold = _MODE_THRESHOLDS.get(mode, logging.INFO)

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= self.threshold


def log_success(logger: logging.Logger, msg: str, *args) -> None:
    logger.log(SUCCESS, msg, *args)


def log_section(logger: logging.Logger, title: str) -> None:
    logger.info("===== %s =====", title)


def log_step(logger: logging.Logger, description: str) -> None:
    logger.info("--- %s ---", description)


def _remove_previous_handlers(root: logging.Logger) -> None:
    for h in list(root.handlers):
        if getattr(h, "_studio_installer", False):
            root.removeHandler(h)
            h.close()


def _point_latest(log_dir: Path, target: Path) -> None:
    latest = log_dir / f"{LOG_BASENAME}-latest.log"
    tmp = log_dir / f".{LOG_BASENAME}-latest.{os.getpid()}"
    if tmp.is_symlink() or tmp.exists():
        tmp.unlink()
    os.symlink(target.name, tmp)
    os.replace(tmp, latest)


def configure_logging(
    log_dir: Optional[str] = DEFAULT_LOG_DIR,
    mode: str = "normal",
    *,
    argv: Optional[Sequence[str]] = None,
) -> Optional[str]:
    """Configure process-wide logging for one installer run.

    The root logger always writes DEBUG and above to a per-run file in log_dir
    and echoes to the console according to mode. If the log directory or file
    cannot be created, logging degrades to console-only; setup never raises.

    Returns the log file path in use, or None when console-only.
    """

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    _remove_previous_handlers(root)

    console = logging.StreamHandler()
    console.setFormatter(logging.Formatter("  [%(levelname)s] %(message)s"))
    console.addFilter(ConsoleModeFilter(mode))
    setattr(console, "_studio_installer", True)
    root.addHandler(console)

    chosen: Optional[str] = None
    file_error: Optional[OSError] = None
    if log_dir:
        stamp = time.strftime("%Y%m%d-%H%M%S")
        log_path = Path(log_dir) / f"{LOG_BASENAME}-{stamp}.log"
        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_path, encoding="utf-8")
        except OSError as e:
            file_error = e
        else:
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(
                logging.Formatter(
                    fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
                    datefmt="%Y-%m-%dT%H:%M:%S%z",
                )
            )
            setattr(file_handler, "_studio_installer", True)
            root.addHandler(file_handler)
            chosen = str(log_path)
            try:
                _point_latest(log_path.parent, log_path)
            except OSError:
                pass

    log = logging.getLogger(__name__)
    if file_error is not None:
        log.warning("Log file unavailable (%s), logging to console only", file_error)
    if mode not in LOG_MODES:
        log.warning("Unknown log mode %r, defaulting to normal", mode)
    log.debug("===== Installer started at %s =====", time.strftime("%Y-%m-%d %H:%M:%S"))
    log.debug("Command line: %s", " ".join(argv if argv is not None else sys.argv))
    log.debug("Logging initialized (mode=%s, file=%s)", mode, chosen)
    return chosen

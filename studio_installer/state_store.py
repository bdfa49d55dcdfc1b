from __future__ import annotations

import logging
import os
import re
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from .errors import InvalidIdentifier

logger = logging.getLogger(__name__)

COMPLETED_DIR = "completed"
VALUES_DIR = "values"
DEPENDENCY_DIR = "dependencies"
ERRORS_DIR = "errors"
PHASE_FILE = "current_phase"
REBOOT_MARKER = "reboot_required"

# Scoped keys are "<owner>:<name>"; owners and raw keys never contain the separator.
SCOPE_SEPARATOR = ":"

# Every identifier becomes a single file name under the state directory.
_IDENTIFIER_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9+._:@-]*$")
_OWNER_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]*$")
_UNSAFE_CHARS_RE = re.compile(r"[^A-Za-z0-9+._@-]")


def validate_identifier(kind: str, value: str) -> str:
    if not isinstance(value, str) or not _IDENTIFIER_RE.match(value) or len(value) > 200:
        raise InvalidIdentifier(f"Invalid {kind}: {value!r}")
    return value


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def atomic_write_text(path: Path, text: str) -> None:
    """Write a file via temp file + rename so a crash never leaves it half-written."""

    path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}-", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_path, path)
    except BaseException:
        if os.path.exists(temp_path):
            os.unlink(temp_path)
        raise


class StateStore:
    """Durable ledger of completed steps, key/value entries and the phase pointer.

    Layout under root (each artifact is a plain file an operator can inspect):

        completed/<step_id>                 one marker per completed step
        values/<key>                        one file per value (<owner>:<name> when scoped)
        dependencies/<category>/<package>   package registry
        errors/<timestamp>_<step_id>        one record per step failure
        current_phase                       phase pointer
        reboot_required                     reboot marker (holds the reason)

    With dry_run=True nothing is written to disk: writes go to an in-memory
    overlay so reads within the same run stay consistent.
    """

    def __init__(self, root: str, *, dry_run: bool = False) -> None:
        self.root = Path(root)
        self.dry_run = dry_run
        self._overlay: Dict[Path, Optional[str]] = {}

    def initialize(self) -> None:
        if self.dry_run:
            logger.debug("[DRY RUN] State directory %s left untouched", self.root)
            return
        for sub in (COMPLETED_DIR, VALUES_DIR, DEPENDENCY_DIR, ERRORS_DIR):
            (self.root / sub).mkdir(parents=True, exist_ok=True)
        logger.debug("Initialized state directory %s", self.root)

    # -- low-level file markers --------------------------------------------

    def _path(self, *parts: str) -> Path:
        return self.root.joinpath(*parts)

    def _read(self, path: Path) -> Optional[str]:
        if path in self._overlay:
            return self._overlay[path]
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def _write(self, path: Path, text: str) -> None:
        if self.dry_run:
            self._overlay[path] = text
            return
        atomic_write_text(path, text)
        self._overlay.pop(path, None)

    def _remove(self, path: Path) -> bool:
        existed = self._read(path) is not None
        if self.dry_run:
            self._overlay[path] = None
            return existed
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        return existed

    def has_marker(self, *parts: str) -> bool:
        return self._read(self._path(*parts)) is not None

    def write_marker(self, *parts: str, text: Optional[str] = None) -> None:
        self._write(self._path(*parts), (text if text is not None else _now()) + "\n")

    def remove_marker(self, *parts: str) -> bool:
        return self._remove(self._path(*parts))

    def list_markers(self, *dir_parts: str) -> List[str]:
        directory = self._path(*dir_parts)
        names = set()
        if directory.is_dir():
            names = {p.name for p in directory.iterdir() if p.is_file() and not p.name.startswith(".")}
        for path, text in self._overlay.items():
            if path.parent == directory:
                if text is None:
                    names.discard(path.name)
                else:
                    names.add(path.name)
        return sorted(names)

    # -- step completion -----------------------------------------------------

    def is_done(self, step_id: str) -> bool:
        try:
            validate_identifier("step id", step_id)
            return self.has_marker(COMPLETED_DIR, step_id)
        except (InvalidIdentifier, OSError) as e:
            logger.debug("Treating step %r as not completed: %s", step_id, e)
            return False

    def mark_done(self, step_id: str, *, fingerprint: Optional[str] = None) -> None:
        """Record completion, optionally with a fingerprint of what ran.

        The marker holds the completion time and, when given, a
        "fingerprint=<hex>" line.
        """
        validate_identifier("step id", step_id)
        if self.has_marker(COMPLETED_DIR, step_id) and self.completion_fingerprint(step_id) == fingerprint:
            return
        text = _now() if fingerprint is None else f"{_now()}\nfingerprint={fingerprint}"
        self.write_marker(COMPLETED_DIR, step_id, text=text)
        logger.debug("Marked step %s as completed", step_id)

    def completion_fingerprint(self, step_id: str) -> Optional[str]:
        validate_identifier("step id", step_id)
        text = self._read(self._path(COMPLETED_DIR, step_id))
        for line in (text or "").splitlines():
            if line.startswith("fingerprint="):
                return line[len("fingerprint="):].strip() or None
        return None

    def reset(self, step_id: str) -> bool:
        """Remove a completion marker. Returns True if one existed."""
        validate_identifier("step id", step_id)
        existed = self.remove_marker(COMPLETED_DIR, step_id)
        if existed:
            logger.debug("Reset step %s (marked as not completed)", step_id)
        else:
            logger.debug("Step %s was not marked as completed, no action needed", step_id)
        return existed

    def completed_steps(self) -> List[str]:
        return self.list_markers(COMPLETED_DIR)

    # -- key/value entries ---------------------------------------------------

    @staticmethod
    def _raw_key(key: str) -> str:
        validate_identifier("state key", key)
        if SCOPE_SEPARATOR in key:
            raise InvalidIdentifier(f"Invalid state key: {key!r} ({SCOPE_SEPARATOR!r} is reserved for scoped keys)")
        return key

    def _store_value(self, key: str, value: str) -> None:
        self._write(self._path(VALUES_DIR, key), str(value) + "\n")
        logger.debug("Stored value for %s: %s", key, value)

    def _load_value(self, key: str, default: Optional[str]) -> Optional[str]:
        text = self._read(self._path(VALUES_DIR, key))
        if text is None:
            logger.debug("No value found for %s, using default: %s", key, default)
            return default
        return text[:-1] if text.endswith("\n") else text

    def set_value(self, key: str, value: str) -> None:
        self._store_value(self._raw_key(key), value)

    def get_value(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self._load_value(self._raw_key(key), default)

    def has_value(self, key: str) -> bool:
        return self._read(self._path(VALUES_DIR, self._raw_key(key))) is not None

    def scope(self, owner: str) -> "ValueScope":
        return ValueScope(self, owner)

    # -- phase pointer and reboot marker ---------------------------------------

    def get_phase(self) -> Optional[str]:
        text = self._read(self._path(PHASE_FILE))
        if text is None:
            return None
        return text.strip() or None

    def set_phase(self, phase: str) -> None:
        self._write(self._path(PHASE_FILE), phase + "\n")

    def reboot_pending(self) -> bool:
        return self.has_marker(REBOOT_MARKER)

    def reboot_reason(self) -> Optional[str]:
        text = self._read(self._path(REBOOT_MARKER))
        return text.strip() if text is not None else None

    def mark_reboot(self, reason: str) -> None:
        self.write_marker(REBOOT_MARKER, text=reason)

    def clear_reboot(self) -> None:
        self.remove_marker(REBOOT_MARKER)

    # -- failure records -----------------------------------------------------

    def record_error(
        self,
        step_id: str,
        phase: str,
        reason: str,
        returncode: Optional[int] = None,
    ) -> str:
        """Persist one failure as errors/<timestamp>_<step>. Returns the record name."""

        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        name = f"{stamp}_{_UNSAFE_CHARS_RE.sub('_', step_id)[:150] or 'unknown'}"
        lines = [
            f"timestamp: {_now()}",
            f"phase: {phase}",
            f"step: {step_id}",
            f"exit_code: {returncode if returncode is not None else '-'}",
            f"message: {reason}",
        ]
        self.write_marker(ERRORS_DIR, name, text="\n".join(lines))
        logger.debug("Recorded failure of step %s as %s", step_id, name)
        return name

    def errors(self) -> List[str]:
        """Failure record names, oldest first."""
        return self.list_markers(ERRORS_DIR)

    def error_details(self, name: str) -> Dict[str, str]:
        text = self._read(self._path(ERRORS_DIR, validate_identifier("error record", name))) or ""
        details: Dict[str, str] = {}
        field = None
        for line in text.splitlines():
            head, sep, rest = line.partition(": ")
            if sep and head in {"timestamp", "phase", "step", "exit_code", "message"}:
                field = head
                details[field] = rest
            elif field == "message":
                details["message"] += "\n" + line
        return details


class ValueScope:
    """Key/value access confined to one owner's namespace.

    Values are global across phases, so every writer keeps to its own
    "<owner>:" namespace; readers in later phases use the same owner.
    Owners may not contain "." or ":", so no two (owner, name) pairs and no
    raw key map to the same file.
    """

    def __init__(self, store: StateStore, owner: str) -> None:
        if not isinstance(owner, str) or not _OWNER_RE.match(owner) or len(owner) > 64:
            raise InvalidIdentifier(f"Invalid value owner: {owner!r}")
        self.store = store
        self.owner = owner

    def _key(self, name: str) -> str:
        return validate_identifier("state key", f"{self.owner}{SCOPE_SEPARATOR}{validate_identifier('state key', name)}")

    def set(self, name: str, value: str) -> None:
        self.store._store_value(self._key(name), value)

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.store._load_value(self._key(name), default)

    def has(self, name: str) -> bool:
        return self.store._read(self.store._path(VALUES_DIR, self._key(name))) is not None

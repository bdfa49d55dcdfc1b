from __future__ import annotations

from typing import Optional


class InstallerError(Exception):
    """Base class for installer errors."""


class StepFailed(InstallerError):
    def __init__(self, step_id: str, message: str, *, returncode: Optional[int] = None) -> None:
        super().__init__(message)
        self.step_id = step_id
        self.returncode = returncode


class InvalidIdentifier(InstallerError, ValueError):
    """A step id, value key or package name that cannot be stored safely."""


class UnknownPhase(InstallerError, ValueError):
    pass

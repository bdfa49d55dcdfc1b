from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional, Protocol

from ..context import InstallerContext


class Step(Protocol):
    """A single idempotent unit of provisioning work.

    critical=None leaves the decision to the installer configuration.
    A fingerprint, when set, identifies the version of the work; a completed
    step whose fingerprint changed runs again.
    """

    step_id: str
    critical: Optional[bool]
    fingerprint: Optional[str]

    def run(self, ctx: InstallerContext) -> Optional[bool]:
        ...


@dataclass(frozen=True)
class PythonStep:
    step_id: str
    func: Callable[[InstallerContext], Optional[bool]]
    critical: Optional[bool] = None
    fingerprint: Optional[str] = None

    def run(self, ctx: InstallerContext) -> Optional[bool]:
        return self.func(ctx)

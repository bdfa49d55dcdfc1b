from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from .config import InstallerConfig
from .lib.pkg import AptInstaller
from .package_registry import (
    InstallResult,
    PackageCategory,
    PackageInstaller,
    PackageRegistry,
    UntrackedPackageRegistry,
)
from .prompt import prompt_yes_no
from .state_store import StateStore, ValueScope

logger = logging.getLogger(__name__)

Confirm = Callable[[str, bool], bool]


@dataclass
class InstallerContext:
    """Everything a phase or step needs, passed explicitly."""

    config: InstallerConfig
    state: StateStore
    packages: PackageRegistry
    confirm: Confirm = prompt_yes_no
    reboot_reasons: List[str] = field(default_factory=list)

    @property
    def dry_run(self) -> bool:
        return self.config.dry_run

    @property
    def force(self) -> bool:
        return self.config.force

    @property
    def interactive(self) -> bool:
        return self.config.interactive

    def values(self, owner: str) -> ValueScope:
        return self.state.scope(owner)

    def smart_install(self, names: Sequence[str], category: "str | PackageCategory") -> InstallResult:
        return self.packages.smart_install(names, category)

    def request_reboot(self, reason: str) -> None:
        logger.warning("System reboot required: %s", reason)
        self.reboot_reasons.append(reason)

    @property
    def reboot_requested(self) -> bool:
        return bool(self.reboot_reasons)

    def take_reboot_reasons(self) -> List[str]:
        reasons, self.reboot_reasons = self.reboot_reasons, []
        return reasons


def build_context(
    config: InstallerConfig,
    *,
    installer: Optional[PackageInstaller] = None,
    confirm: Optional[Confirm] = None,
) -> InstallerContext:
    state = StateStore(config.state_dir, dry_run=config.dry_run)
    state.initialize()

    pkg_installer = installer if installer is not None else AptInstaller(dry_run=config.dry_run)
    if config.dependency_tracking:
        packages: PackageRegistry = PackageRegistry(state, pkg_installer)
    else:
        logger.info("Dependency tracking disabled; packages will not be deduplicated")
        packages = UntrackedPackageRegistry(state, pkg_installer)

    return InstallerContext(
        config=config,
        state=state,
        packages=packages,
        confirm=confirm if confirm is not None else prompt_yes_no,
    )

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Protocol, Sequence

from .state_store import DEPENDENCY_DIR, StateStore, validate_identifier

logger = logging.getLogger(__name__)


class PackageCategory(str, Enum):
    """Package categories; priority orders reports only, never installation."""

    CORE = "core"
    ESSENTIAL = "essential"
    DEVELOPMENT = "development"
    UTILITIES = "utilities"
    NETWORK = "network"
    DESKTOP = "desktop"
    MULTIMEDIA = "multimedia"
    BROWSERS = "browsers"
    PRODUCTIVITY = "productivity"
    OTHER = "other"

    @property
    def priority(self) -> int:
        return _PRIORITIES[self]

    @classmethod
    def parse(cls, value: "str | PackageCategory") -> "PackageCategory":
        if isinstance(value, PackageCategory):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            logger.warning("Unknown package category: %s, defaulting to 'other'", value)
            return cls.OTHER


_PRIORITIES = {
    PackageCategory.CORE: 10,
    PackageCategory.ESSENTIAL: 20,
    PackageCategory.DEVELOPMENT: 30,
    PackageCategory.UTILITIES: 40,
    PackageCategory.NETWORK: 50,
    PackageCategory.DESKTOP: 60,
    PackageCategory.MULTIMEDIA: 70,
    PackageCategory.BROWSERS: 80,
    PackageCategory.PRODUCTIVITY: 90,
    PackageCategory.OTHER: 100,
}


class PackageInstaller(Protocol):
    """Installs a batch of packages in one call, raising on failure."""

    def install(self, packages: Sequence[str]) -> None:
        ...


@dataclass(frozen=True)
class InstallResult:
    category: PackageCategory
    installed: List[str]
    skipped: List[str]


class PackageRegistry:
    """Durable record of packages already handled, partitioned by category.

    A package belongs to the first category it was registered under; later
    registrations under any category are no-ops.
    """

    def __init__(self, store: StateStore, installer: PackageInstaller) -> None:
        self.store = store
        self.installer = installer

    def category_of(self, name: str) -> Optional[PackageCategory]:
        validate_identifier("package name", name)
        for category in PackageCategory:
            if self.store.has_marker(DEPENDENCY_DIR, category.value, name):
                return category
        return None

    def is_registered(self, name: str) -> bool:
        found = self.category_of(name)
        if found is None:
            logger.debug("Package '%s' is not registered", name)
            return False
        logger.debug("Package '%s' is registered in category '%s'", name, found.value)
        return True

    def register(self, name: str, category: "str | PackageCategory" = PackageCategory.OTHER) -> bool:
        """Record a package. Returns False if it was already registered anywhere."""

        cat = PackageCategory.parse(category)
        existing = self.category_of(name)
        if existing is not None:
            logger.debug("Package '%s' already registered in category '%s'", name, existing.value)
            return False
        self.store.write_marker(DEPENDENCY_DIR, cat.value, name)
        logger.debug("Registered package '%s' in category '%s'", name, cat.value)
        return True

    def register_many(self, names: Iterable[str], category: "str | PackageCategory") -> int:
        cat = PackageCategory.parse(category)
        return sum(1 for n in names if self.register(n, cat))

    def smart_install(self, names: Sequence[str], category: "str | PackageCategory") -> InstallResult:
        """Install the not-yet-registered subset of names in one batch.

        Newly installed names are registered only after the whole batch
        succeeds; an installer failure propagates and registers nothing.
        """

        cat = PackageCategory.parse(category)
        to_install: List[str] = []
        skipped: List[str] = []
        for name in names:
            if self.is_registered(name):
                logger.info("Package '%s' is already installed. Skipping...", name)
                skipped.append(name)
            elif name not in to_install:
                to_install.append(name)

        if not to_install:
            logger.info("No packages need to be installed in category '%s'", cat.value)
            return InstallResult(category=cat, installed=[], skipped=skipped)

        logger.info("Installing %d packages in category '%s'", len(to_install), cat.value)
        try:
            self.installer.install(to_install)
        except Exception:
            logger.error("Failed to install packages in category '%s': %s", cat.value, " ".join(to_install))
            raise

        for name in to_install:
            self.register(name, cat)
        return InstallResult(category=cat, installed=to_install, skipped=skipped)

    def packages_in(self, category: "str | PackageCategory") -> List[str]:
        return self.store.list_markers(DEPENDENCY_DIR, PackageCategory.parse(category).value)

    def summary(self) -> Dict[PackageCategory, List[str]]:
        """Registered packages per non-empty category, in priority order."""
        out: Dict[PackageCategory, List[str]] = {}
        for category in sorted(PackageCategory, key=lambda c: c.priority):
            pkgs = self.packages_in(category)
            if pkgs:
                out[category] = pkgs
        return out

    def count(self) -> int:
        return sum(len(p) for p in self.summary().values())


class UntrackedPackageRegistry(PackageRegistry):
    """Registry used when dependency tracking is disabled.

    Every request goes to the installer and nothing is recorded.
    """

    def category_of(self, name: str) -> Optional[PackageCategory]:
        validate_identifier("package name", name)
        return None

    def register(self, name: str, category: "str | PackageCategory" = PackageCategory.OTHER) -> bool:
        validate_identifier("package name", name)
        return False

    def summary(self) -> Dict[PackageCategory, List[str]]:
        return {}


def format_summary(summary: Dict[PackageCategory, List[str]]) -> List[str]:
    lines = ["Registered Packages by Category:"]
    total = 0
    for category, pkgs in summary.items():
        total += len(pkgs)
        lines.append(f"{category.value} ({len(pkgs)} packages): {' '.join(pkgs)}")
    lines.append(f"Total registered packages: {total}")
    return lines

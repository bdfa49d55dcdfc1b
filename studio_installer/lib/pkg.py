from __future__ import annotations

import logging
from typing import Sequence

from .command import run_cmd

logger = logging.getLogger(__name__)

APT_ENV = {"DEBIAN_FRONTEND": "noninteractive"}


def apt_update(*, dry_run: bool = False) -> None:
    run_cmd(["apt-get", "update"], env=APT_ENV, dry_run=dry_run)


def apt_install(packages: Sequence[str], *, dry_run: bool = False) -> None:
    if not packages:
        return
    run_cmd(["apt-get", "install", "-y", *packages], env=APT_ENV, dry_run=dry_run)


class AptInstaller:
    """Package-manager collaborator used by the package registry.

    The package index is refreshed once per process, before the first install.
    """

    def __init__(self, *, dry_run: bool = False) -> None:
        self.dry_run = dry_run
        self._updated = False

    def install(self, packages: Sequence[str]) -> None:
        if not packages:
            return
        if not self._updated:
            apt_update(dry_run=self.dry_run)
            self._updated = True
        apt_install(packages, dry_run=self.dry_run)

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Paths:
    state_default: str = "/var/cache/system-installer"
    log_dir_default: str = "/var/log/system-installer"
    script_root_default: str = "."
    system_reboot_marker: str = "/var/run/reboot-required"


PATHS = Paths()

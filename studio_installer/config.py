from __future__ import annotations

import copy
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .lib.env import PATHS

PHASE_DIRS = {
    "init": "01-init",
    "studio": "02-studio",
    "plasma": "03-plasma",
    "apps": "04-apps",
    "tweaks": "05-tweaks",
}


@dataclass(frozen=True)
class InstallerConfig:
    raw: Dict[str, Any]

    def _section(self, name: str) -> Dict[str, Any]:
        return self.raw.get(name) or {}

    def _flag(self, section: str, key: str, default: bool) -> bool:
        value = self._section(section).get(key)
        return default if value is None else bool(value)

    @property
    def state_dir(self) -> str:
        return str(self._section("paths").get("state_dir") or PATHS.state_default)

    @property
    def log_dir(self) -> str:
        return str(self._section("paths").get("log_dir") or PATHS.log_dir_default)

    @property
    def script_root(self) -> str:
        return str(self._section("paths").get("script_root") or PATHS.script_root_default)

    @property
    def log_mode(self) -> str:
        return str(self._section("logging").get("mode") or "normal").strip().lower()

    @property
    def interactive(self) -> bool:
        return self._flag("installer", "interactive", True)

    @property
    def force(self) -> bool:
        return self._flag("installer", "force", False)

    @property
    def dry_run(self) -> bool:
        return self._flag("installer", "dry_run", False)

    @property
    def auto_reboot(self) -> bool:
        return self._flag("installer", "auto_reboot", False)

    @property
    def require_root(self) -> bool:
        return self._flag("installer", "require_root", True)

    @property
    def dependency_tracking(self) -> bool:
        return self._flag("installer", "dependency_tracking", True)

    @property
    def honor_system_reboot_marker(self) -> bool:
        return self._flag("installer", "honor_system_reboot_marker", False)

    def _phase_entry(self, phase: str) -> Dict[str, Any]:
        return self._section("phases").get(phase) or {}

    def phase_enabled(self, phase: str) -> bool:
        value = self._phase_entry(phase).get("enabled")
        return True if value is None else bool(value)

    def phase_dir(self, phase: str) -> Optional[str]:
        rel = self._phase_entry(phase).get("dir") or PHASE_DIRS.get(phase)
        if rel is None:
            return None
        return str(Path(self.script_root) / rel)

    @property
    def critical_steps(self) -> List[str]:
        return [str(s) for s in (self._section("steps").get("critical") or [])]

    @property
    def best_effort_steps(self) -> List[str]:
        return [str(s) for s in (self._section("steps").get("best_effort") or [])]

    @property
    def default_critical(self) -> bool:
        return self._flag("steps", "default_critical", True)

    def is_critical(self, step_id: str, declared: Optional[bool] = None) -> bool:
        """Criticality: config lists win, then the step's own declaration, then the default."""
        if step_id in self.critical_steps:
            return True
        if step_id in self.best_effort_steps:
            return False
        if declared is not None:
            return declared
        return self.default_critical

    def with_overrides(
        self,
        *,
        paths: Optional[Dict[str, Any]] = None,
        installer: Optional[Dict[str, Any]] = None,
        logging: Optional[Dict[str, Any]] = None,
        disabled_phases: Optional[List[str]] = None,
    ) -> "InstallerConfig":
        raw = copy.deepcopy(self.raw)
        for name, values in (("paths", paths), ("installer", installer), ("logging", logging)):
            if values:
                section = raw.setdefault(name, {}) or {}
                section.update({k: v for k, v in values.items() if v is not None})
                raw[name] = section
        for phase in disabled_phases or []:
            phases = raw.setdefault("phases", {}) or {}
            entry = phases.setdefault(phase, {}) or {}
            entry["enabled"] = False
            phases[phase] = entry
            raw["phases"] = phases
        return InstallerConfig(raw=raw)


def load_config(path: Optional[str]) -> InstallerConfig:
    if path is None:
        return InstallerConfig(raw={})

    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(path)

    if p.suffix.lower() not in {".yaml", ".yml"}:
        raise ValueError("installer config must be YAML")

    raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"{path} must contain a mapping/object")

    return InstallerConfig(raw=raw)

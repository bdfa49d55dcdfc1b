"""Shared fixtures: temporary state/log directories and a recording package installer."""

import logging
from typing import List, Sequence

import pytest

from studio_installer.config import InstallerConfig
from studio_installer.context import build_context
from studio_installer.state_store import StateStore


class RecordingInstaller:
    """Package installer double that records each batch call."""

    def __init__(self, fail: bool = False):
        self.calls: List[List[str]] = []
        self.fail = fail

    def install(self, packages: Sequence[str]) -> None:
        self.calls.append(list(packages))
        if self.fail:
            raise RuntimeError("apt-get install failed")


@pytest.fixture(autouse=True)
def reset_root_logging():
    yield
    root = logging.getLogger()
    for h in list(root.handlers):
        if getattr(h, "_studio_installer", False):
            root.removeHandler(h)
            h.close()


@pytest.fixture
def state_dir(tmp_path):
    return tmp_path / "state"


@pytest.fixture
def store(state_dir):
    s = StateStore(str(state_dir))
    s.initialize()
    return s


@pytest.fixture
def installer():
    return RecordingInstaller()


@pytest.fixture
def make_config(tmp_path, state_dir):
    """Build an InstallerConfig rooted in tmp_path; keyword args are merged per section."""

    def factory(**sections):
        raw = {
            "paths": {
                "state_dir": str(state_dir),
                "log_dir": str(tmp_path / "logs"),
                "script_root": str(tmp_path / "scripts"),
            },
            "installer": {"interactive": False, "require_root": False},
        }
        for name, values in sections.items():
            raw.setdefault(name, {}).update(values)
        return InstallerConfig(raw=raw)

    return factory


@pytest.fixture
def make_context(make_config, installer):
    def factory(config=None, confirm=None, **sections):
        return build_context(config or make_config(**sections), installer=installer, confirm=confirm)

    return factory

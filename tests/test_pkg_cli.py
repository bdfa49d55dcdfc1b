"""Tests for the package registry bridge command."""

import pytest

from studio_installer import pkg_cli
from studio_installer.pkg_cli import main

from .conftest import RecordingInstaller


@pytest.fixture
def recording(monkeypatch):
    installer = RecordingInstaller()
    monkeypatch.setattr(pkg_cli, "AptInstaller", lambda dry_run=False: installer)
    return installer


def test_install_then_query(tmp_path, recording, capsys):
    state = str(tmp_path / "state")

    assert main(["--state-dir", state, "install", "multimedia", "ardour", "audacity"]) == 0
    assert main(["--state-dir", state, "install", "essential", "ardour", "git"]) == 0
    assert recording.calls == [["ardour", "audacity"], ["git"]]

    capsys.readouterr()
    assert main(["--state-dir", state, "is-registered", "ardour"]) == 0
    assert capsys.readouterr().out.strip() == "multimedia"
    assert main(["--state-dir", state, "is-registered", "vlc"]) == 1

    assert main(["--state-dir", state, "count"]) == 0
    assert capsys.readouterr().out.strip() == "3"


def test_install_failure_exit_code(tmp_path, monkeypatch):
    monkeypatch.setattr(pkg_cli, "AptInstaller", lambda dry_run=False: RecordingInstaller(fail=True))
    state = str(tmp_path / "state")

    assert main(["--state-dir", state, "install", "core", "linux-lowlatency"]) == 1
    assert main(["--state-dir", state, "is-registered", "linux-lowlatency"]) == 1


def test_register_and_list(tmp_path, recording, capsys):
    state = str(tmp_path / "state")

    assert main(["--state-dir", state, "register", "essential", "rsync", "curl"]) == 0
    assert recording.calls == []

    assert main(["--state-dir", state, "list"]) == 0
    out = capsys.readouterr().out
    assert "essential (2 packages): curl rsync" in out
    assert "Total registered packages: 2" in out


def test_state_dir_from_environment(tmp_path, recording, monkeypatch):
    monkeypatch.setenv("STATE_DIR", str(tmp_path / "env-state"))

    assert main(["register", "core", "git"]) == 0
    assert (tmp_path / "env-state" / "dependencies" / "core" / "git").is_file()

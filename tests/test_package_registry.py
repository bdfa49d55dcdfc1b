"""Tests for package registration and deduplicated batch installs."""

import pytest

from studio_installer.errors import InvalidIdentifier
from studio_installer.package_registry import (
    PackageCategory,
    PackageRegistry,
    UntrackedPackageRegistry,
    format_summary,
)

from .conftest import RecordingInstaller


@pytest.fixture
def registry(store, installer):
    return PackageRegistry(store, installer)


def test_first_category_wins(registry, state_dir):
    assert registry.register("git", "essential") is True
    assert registry.register("git", "development") is False

    assert registry.category_of("git") is PackageCategory.ESSENTIAL
    assert registry.is_registered("git")
    assert (state_dir / "dependencies" / "essential" / "git").is_file()
    assert not (state_dir / "dependencies" / "development" / "git").exists()


def test_unknown_category_falls_back_to_other(registry):
    registry.register("obscure-tool", "gadgets")
    assert registry.category_of("obscure-tool") is PackageCategory.OTHER


def test_invalid_package_name(registry):
    with pytest.raises(InvalidIdentifier):
        registry.register("../../etc", "core")


def test_smart_install_skips_registered_and_batches_the_rest(registry, installer):
    registry.register("curl", "essential")

    result = registry.smart_install(["curl", "ardour", "audacity"], "multimedia")

    assert installer.calls == [["ardour", "audacity"]]
    assert result.installed == ["ardour", "audacity"]
    assert result.skipped == ["curl"]
    assert registry.category_of("ardour") is PackageCategory.MULTIMEDIA
    assert registry.category_of("curl") is PackageCategory.ESSENTIAL


def test_smart_install_twice_does_not_reinstall(registry, installer):
    registry.smart_install(["a", "b", "c"], "utilities")
    second = registry.smart_install(["a", "b", "c"], "utilities")

    assert installer.calls == [["a", "b", "c"]]
    assert second.installed == []
    assert second.skipped == ["a", "b", "c"]


def test_smart_install_is_all_or_nothing(store):
    failing = RecordingInstaller(fail=True)
    registry = PackageRegistry(store, failing)

    with pytest.raises(RuntimeError):
        registry.smart_install(["a", "b", "c"], "core")

    assert failing.calls == [["a", "b", "c"]]
    assert not any(registry.is_registered(p) for p in ("a", "b", "c"))


def test_smart_install_dedups_request(registry, installer):
    registry.smart_install(["vlc", "vlc", "mpv"], "multimedia")
    assert installer.calls == [["vlc", "mpv"]]


def test_summary_orders_by_priority(registry):
    registry.register("firefox", "browsers")
    registry.register("git", "core")
    registry.register("htop", "utilities")
    registry.register("gimp", "other")

    summary = registry.summary()

    assert list(summary) == [
        PackageCategory.CORE,
        PackageCategory.UTILITIES,
        PackageCategory.BROWSERS,
        PackageCategory.OTHER,
    ]
    assert registry.count() == 4
    lines = format_summary(summary)
    assert lines[0] == "Registered Packages by Category:"
    assert lines[-1] == "Total registered packages: 4"


def test_category_priorities():
    assert PackageCategory.CORE.priority == 10
    assert PackageCategory.PRODUCTIVITY.priority == 90
    assert PackageCategory.OTHER.priority == 100


def test_untracked_registry_installs_everything(store, installer):
    registry = UntrackedPackageRegistry(store, installer)

    registry.smart_install(["git"], "core")
    registry.smart_install(["git"], "core")

    assert installer.calls == [["git"], ["git"]]
    assert registry.is_registered("git") is False
    assert registry.summary() == {}

"""Package registry bridge for shell step scripts.

Scripts run by the installer receive STATE_DIR in their environment; this
command shares that state directory so a script can deduplicate its installs:

    studio-installer-pkg install multimedia ardour audacity
    studio-installer-pkg is-registered pipewire || ...
"""

from __future__ import annotations

import argparse
import logging
import os
from typing import Optional

from .lib.env import PATHS
from .lib.pkg import AptInstaller
from .logging_utils import configure_logging
from .package_registry import PackageCategory, PackageRegistry, format_summary
from .state_store import StateStore

logger = logging.getLogger(__name__)


def _registry_from_args(args: argparse.Namespace) -> PackageRegistry:
    store = StateStore(args.state_dir, dry_run=bool(args.dry_run))
    store.initialize()
    return PackageRegistry(store, AptInstaller(dry_run=bool(args.dry_run)))


def cmd_install(args: argparse.Namespace) -> int:
    registry = _registry_from_args(args)
    try:
        result = registry.smart_install(args.packages, args.category)
    except Exception as e:
        logger.error("%s", e)
        return 1
    logger.info("Installed %d, skipped %d", len(result.installed), len(result.skipped))
    return 0


def cmd_register(args: argparse.Namespace) -> int:
    registry = _registry_from_args(args)
    added = registry.register_many(args.packages, args.category)
    logger.info("Registered %d new packages in category '%s'", added, PackageCategory.parse(args.category).value)
    return 0


def cmd_is_registered(args: argparse.Namespace) -> int:
    registry = _registry_from_args(args)
    category = registry.category_of(args.package)
    if category is None:
        return 1
    print(category.value)
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    registry = _registry_from_args(args)
    for line in format_summary(registry.summary()):
        print(line)
    return 0


def cmd_count(args: argparse.Namespace) -> int:
    registry = _registry_from_args(args)
    print(registry.count())
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="studio-installer-pkg")
    p.add_argument(
        "--state-dir",
        default=os.environ.get("STATE_DIR") or PATHS.state_default,
        help="State directory (defaults to $STATE_DIR)",
    )
    p.add_argument("--dry-run", action="store_true", default=os.environ.get("DRY_RUN") == "true")
    p.add_argument("--log-mode", default="normal")
    sub = p.add_subparsers(dest="command", required=True)

    s = sub.add_parser("install", help="Install packages not yet registered, then register them")
    s.add_argument("category")
    s.add_argument("packages", nargs="+")
    s.set_defaults(func=cmd_install)

    s = sub.add_parser("register", help="Record packages as installed without installing")
    s.add_argument("category")
    s.add_argument("packages", nargs="+")
    s.set_defaults(func=cmd_register)

    s = sub.add_parser("is-registered", help="Exit 0 and print the category if registered")
    s.add_argument("package")
    s.set_defaults(func=cmd_is_registered)

    s = sub.add_parser("list", help="List registered packages by category")
    s.set_defaults(func=cmd_list)

    s = sub.add_parser("count", help="Print the number of registered packages")
    s.set_defaults(func=cmd_count)
    return p


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(None, args.log_mode, argv=argv)
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())

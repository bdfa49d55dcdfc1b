from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


def prompt_yes_no(question: str, default: bool = False) -> bool:
    """Ask the operator a yes/no question on the terminal.

    An empty answer or a closed stdin selects the default.
    """

    suffix = "[Y/n]" if default else "[y/N]"
    while True:
        try:
            answer = input(f"{question} {suffix} ").strip().lower()
        except EOFError:
            logger.debug("No input available, using default answer for %r", question)
            return default
        if not answer:
            return default
        if answer in {"y", "yes"}:
            return True
        if answer in {"n", "no"}:
            return False
        print("Please answer 'y' or 'n'.")

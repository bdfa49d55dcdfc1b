"""Studio workstation installer (phase-sequenced, resumable).

Core design goals:
- Resumable across reboots via a durable phase pointer
- At-most-once steps backed by an on-disk completion ledger
- Package installs deduplicated across independently written steps
- Plain-file state an operator can inspect with ls/cat
- Centralized logging
"""

__all__ = []

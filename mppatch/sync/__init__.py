"""Upstream sync — keeping the unit set healthy as the upstream tree evolves.

This package provides:
- Drift monitor: dry-run checks of the unit set against fresh upstream snapshots
- Version ledger: append-only record of which upstream revisions are known good
- Notifiers: delivery of compatibility events when a revision breaks the set
"""

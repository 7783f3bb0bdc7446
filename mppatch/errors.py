"""Error taxonomy for mppatch.

Three families:
- Configuration: fatal, raised before any probing (bad unit, bad tree root, bad config).
- Conflict: per-unit, raised by the text engine and turned into a CONFLICTED
  probe result. Never escapes the engine.
- Environment: fatal to the current run and potentially transient (I/O, fetch).
"""

from __future__ import annotations


class MppatchError(Exception):
    """Base class for every error raised by mppatch."""


class ConfigurationError(MppatchError):
    """Malformed unit definition, invalid tree root, or bad settings."""


class EnvironmentFailure(MppatchError):
    """Filesystem or network failure that aborts the current run."""


class FetchError(EnvironmentFailure):
    """Fetching the upstream snapshot failed or timed out."""


# ── Conflicts (text engine) ──────────────────────────────────────────


class ApplyConflict(MppatchError):
    """A unit's diff does not apply against the current file content."""


class AnchorMissing(ApplyConflict):
    pass


class AnchorAmbiguous(ApplyConflict):
    pass


class HunkMismatch(ApplyConflict):
    pass


class HunkAmbiguous(ApplyConflict):
    pass

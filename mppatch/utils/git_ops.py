"""Git operations — fetch disposable upstream snapshots, inspect checkouts."""

from __future__ import annotations

import logging
import re
import shutil
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path

from git import GitCommandError, Repo
from git.exc import UnsafeOptionError, UnsafeProtocolError

from mppatch.errors import ConfigurationError, FetchError

logger = logging.getLogger(__name__)

# Branch, tag, or commit names; no whitespace, control characters, or refspec syntax
SAFE_REF = re.compile(r"[A-Za-z0-9._/-]+")


@dataclass
class Snapshot:
    """A throw-away checkout of the upstream tree at one revision.

    Use as a context manager so the directory is always removed::

        with fetch_snapshot(url, "main", timeout=300) as snap:
            engine.run(snap.local_path, units, RunMode.DRY_RUN)
        # snapshot directory is deleted here
    """

    local_path: Path
    """Filesystem path to the snapshot root."""

    revision: str
    """Full commit SHA the snapshot was checked out at."""

    ref: str = ""
    """The ref that was requested (branch, tag, or SHA)."""

    source_url: str = ""

    def __enter__(self) -> "Snapshot":
        return self

    def __exit__(self, *exc) -> None:
        self.cleanup()

    def cleanup(self) -> None:
        """Remove the snapshot directory."""
        if self.local_path.exists():
            shutil.rmtree(self.local_path, ignore_errors=True)


def fetch_snapshot(url: str, ref: str, timeout: float) -> Snapshot:
    """Fetch ``ref`` from ``url`` (depth 1) into a new temporary directory.

    Every git invocation is bounded by what remains of ``timeout`` seconds.

    Raises:
        ConfigurationError: ``url`` or ``ref`` could be read as a git option.
        FetchError: if any git step fails, the URL uses a protocol GitPython
            refuses, or the timeout is exceeded. The temporary directory is
            removed before the error propagates.
    """
    validate_fetch_args(url, ref)
    deadline = time.monotonic() + timeout
    snap_dir = Path(tempfile.mkdtemp(prefix="mppatch_upstream_"))
    logger.info("Fetching %s@%s into %s", url, ref, snap_dir)

    try:
        repo = Repo.init(snap_dir)
        repo.create_remote("origin", url)
        # "--" keeps the remote and ref out of option parsing
        repo.git.fetch(
            "--", "origin", ref, depth=1, kill_after_timeout=_remaining(deadline, url, ref)
        )
        repo.git.checkout("--detach", "FETCH_HEAD", kill_after_timeout=_remaining(deadline, url, ref))
        revision = repo.head.commit.hexsha
    except (UnsafeProtocolError, UnsafeOptionError) as e:
        shutil.rmtree(snap_dir, ignore_errors=True)
        logger.error("Refusing to fetch %s@%s: %s", url, ref, e)
        raise FetchError(f"Refusing to fetch {url}@{ref}: {e}") from e
    except GitCommandError as e:
        shutil.rmtree(snap_dir, ignore_errors=True)
        logger.error("Fetching %s@%s failed: %s", url, ref, e)
        raise FetchError(f"Could not fetch {url}@{ref}: {e.stderr or e}") from e
    except FetchError:
        shutil.rmtree(snap_dir, ignore_errors=True)
        raise
    except OSError as e:
        shutil.rmtree(snap_dir, ignore_errors=True)
        raise FetchError(f"Could not prepare snapshot for {url}@{ref}: {e}") from e

    return Snapshot(local_path=snap_dir, revision=revision, ref=ref, source_url=url)


def validate_fetch_args(url: str, ref: str) -> None:
    """Reject a URL or ref that git could parse as something other than a name."""
    if not url or url.startswith("-"):
        raise ConfigurationError(f"Invalid upstream URL: {url!r}")
    if not ref or ref.startswith("-") or not SAFE_REF.fullmatch(ref):
        raise ConfigurationError(f"Invalid upstream ref: {ref!r}")


def _remaining(deadline: float, url: str, ref: str) -> float:
    left = deadline - time.monotonic()
    if left <= 0:
        raise FetchError(f"Timed out fetching {url}@{ref}")
    return left

"""Access to the files of a target tree.

``TreeView`` reads straight from disk. ``OverlayTree`` layers an in-memory
write buffer on top, so a dry run can carry simulated changes forward to the
units that follow without touching the checkout.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

from mppatch.errors import ConfigurationError, EnvironmentFailure

logger = logging.getLogger(__name__)

DEFAULT_MARKER_DIR = "webrtc-sys"


def validate_tree_root(tree_root: str | Path, marker_dir: str = DEFAULT_MARKER_DIR) -> Path:
    """Check that ``tree_root`` looks like the expected checkout.

    Raises:
        ConfigurationError: if the directory is missing or lacks the marker.
    """
    root = Path(tree_root)
    if not root.is_dir():
        raise ConfigurationError(f"Directory does not exist: {root}")
    if marker_dir and not (root / marker_dir).is_dir():
        raise ConfigurationError(
            f"'{root}' does not look like a rust-sdks checkout "
            f"(expected to find {marker_dir}/ subdirectory)"
        )
    return root


class TreeView:
    """Read/write access to files under a tree root."""

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def path_for(self, target: str) -> Path:
        return self.root / target

    def read(self, target: str) -> str | None:
        """Return the file content, or None if the file does not exist."""
        path = self.path_for(target)
        if not path.is_file():
            return None
        try:
            with open(path, encoding="utf-8", newline="") as f:
                return f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise EnvironmentFailure(f"Cannot read {path}: {e}") from e

    def write(self, target: str, content: str) -> None:
        """Atomically replace the file content (temp file + rename)."""
        path = self.path_for(target)
        fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
                f.write(content)
            if path.exists():
                os.chmod(tmp, path.stat().st_mode & 0o7777)
            os.replace(tmp, path)
        except OSError as e:
            try:
                os.unlink(tmp)
            except OSError:
                pass
            raise EnvironmentFailure(f"Cannot write {path}: {e}") from e
        logger.debug("Wrote %s", path)


class OverlayTree(TreeView):
    """A TreeView whose writes stay in memory."""

    def __init__(self, root: str | Path):
        super().__init__(root)
        self._pending: dict[str, str] = {}

    def read(self, target: str) -> str | None:
        if target in self._pending:
            return self._pending[target]
        return super().read(target)

    def write(self, target: str, content: str) -> None:
        self._pending[target] = content

    @property
    def pending(self) -> dict[str, str]:
        return dict(self._pending)

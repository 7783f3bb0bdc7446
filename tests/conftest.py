"""Shared fixtures: a pristine rust-sdks tree and small synthetic units."""

import shutil
from pathlib import Path

import pytest

from mppatch.units.loader import load_units, parse_unit

FIXTURE_TREE = Path(__file__).parent / "fixtures" / "rust-sdks"

TARGETS = (
    "webrtc-sys/src/video_encoder_factory.cpp",
    "webrtc-sys/src/video_decoder_factory.cpp",
    "webrtc-sys/build.rs",
)


@pytest.fixture
def sdk_tree(tmp_path):
    """A fresh, unpatched copy of the rust-sdks fixture tree."""
    root = tmp_path / "rust-sdks"
    shutil.copytree(FIXTURE_TREE, root)
    return root


@pytest.fixture
def shipped_units():
    return load_units()


def snapshot(root, targets=TARGETS):
    """Read the raw bytes of each target, keyed by target path."""
    return {t: (Path(root) / t).read_bytes() for t in targets}


def make_tree(tmp_path, files):
    """Create a minimal tree root (with the marker dir) holding ``files``."""
    root = tmp_path / "tree"
    (root / "webrtc-sys").mkdir(parents=True)
    for target, content in files.items():
        path = root / target
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content.encode("utf-8"))
    return root


def make_unit(name, anchor, target, hunks, index=0):
    """Build a unit from hunk bodies (header is computed from the body)."""
    lines = [
        "---",
        f"name: {name}",
        f"anchor: '{anchor}'",
        "---",
        f"--- a/{target}",
        f"+++ b/{target}",
    ]
    for start, body in hunks:
        old = sum(1 for line in body if line[0] in " -")
        new = sum(1 for line in body if line[0] in " +")
        lines.append(f"@@ -{start},{old} +{start},{new} @@")
        lines.extend(body)
    return parse_unit("\n".join(lines) + "\n", index=index, default_name=name)

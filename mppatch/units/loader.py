"""Load the ordered Modification Unit set from disk.

Each unit lives in its own ``*.patch`` file. File names establish the order
(lexicographic), so units are conventionally prefixed ``0001-``, ``0002-``...

A unit file is a YAML front-matter block followed by a single-file unified
diff::

    ---
    name: register-encoder-factory
    anchor: "#include \\"livekit/video_encoder_factory.h\\""
    description: Register the Rockchip encoder factory in the plugin chain.
    ---
    --- a/webrtc-sys/src/video_encoder_factory.cpp
    +++ b/webrtc-sys/src/video_encoder_factory.cpp
    @@ -17,6 +17,7 @@
    ...

Loading is all-or-nothing: any malformed unit raises ``ConfigurationError``
and no partial set is returned.
"""

from __future__ import annotations

import logging
from pathlib import Path, PurePosixPath

import yaml

from mppatch.errors import ConfigurationError
from mppatch.models.unit import ModificationUnit
from mppatch.units.diff import parse_diff

logger = logging.getLogger(__name__)

PATCH_SUFFIX = ".patch"
FRONT_MATTER_DELIMITER = "---"
ALLOWED_KEYS = {"name", "anchor", "target", "description"}

# Unit set shipped with the package
DEFAULT_PATCHES_DIR = Path(__file__).resolve().parent.parent / "patches"


def discover_unit_files(patches_dir: str | Path) -> list[Path]:
    """Return the ``*.patch`` files directly inside ``patches_dir``, sorted by name."""
    path = Path(patches_dir)
    if not path.is_dir():
        raise ConfigurationError(f"Patches directory not found: {path}")
    files = sorted(
        (p for p in path.iterdir() if p.is_file() and p.suffix == PATCH_SUFFIX),
        key=lambda p: p.name,
    )
    if not files:
        raise ConfigurationError(f"No {PATCH_SUFFIX} files found in {path}")
    return files


def load_units(patches_dir: str | Path | None = None) -> list[ModificationUnit]:
    """Load and validate every unit in ``patches_dir`` (default: the shipped set)."""
    files = discover_unit_files(patches_dir or DEFAULT_PATCHES_DIR)

    units: list[ModificationUnit] = []
    seen: dict[str, Path] = {}
    for index, path in enumerate(files):
        unit = load_unit(path, index)
        if unit.name in seen:
            raise ConfigurationError(
                f"Duplicate unit name '{unit.name}' in {path.name} "
                f"(already defined by {seen[unit.name].name})"
            )
        seen[unit.name] = path
        units.append(unit)

    logger.debug("Loaded %d unit(s) from %s", len(units), files[0].parent)
    return units


def load_unit(path: str | Path, index: int = 0) -> ModificationUnit:
    """Load a single unit file."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigurationError(f"Cannot read unit file {path}: {e}") from e

    try:
        return parse_unit(text, index=index, source=str(path), default_name=path.stem)
    except ConfigurationError as e:
        raise ConfigurationError(f"{path.name}: {e}") from e


def parse_unit(
    text: str,
    index: int = 0,
    source: str = "",
    default_name: str = "",
) -> ModificationUnit:
    """Parse unit text (front matter + diff) into a validated ModificationUnit."""
    meta, diff_text = split_front_matter(text)

    unknown = set(meta) - ALLOWED_KEYS
    if unknown:
        raise ConfigurationError(f"Unknown front-matter key(s): {', '.join(sorted(unknown))}")

    name = str(meta.get("name") or default_name).strip()
    if not name:
        raise ConfigurationError("Unit has no name")

    anchor = meta.get("anchor")
    if not isinstance(anchor, str) or not anchor.strip():
        raise ConfigurationError("Unit anchor must be a non-empty string")

    if not diff_text.strip():
        raise ConfigurationError("Unit diff body is empty")

    parsed = parse_diff(diff_text)
    target = str(meta.get("target") or parsed.path)
    validate_target(target)
    if parsed.old_path != parsed.new_path:
        raise ConfigurationError(
            f"Diff renames {parsed.old_path} -> {parsed.new_path}; renames are not supported"
        )
    if PurePosixPath(parsed.path) != PurePosixPath(target):
        raise ConfigurationError(
            f"Declared target '{target}' does not match diff target '{parsed.path}'"
        )
    _check_anchor_stable(anchor, parsed.hunks)

    return ModificationUnit(
        index=index,
        name=name,
        target=PurePosixPath(target).as_posix(),
        anchor=anchor,
        diff=diff_text,
        hunks=tuple(parsed.hunks),
        description=str(meta.get("description", "")).strip(),
        source=source,
    )


def split_front_matter(text: str) -> tuple[dict, str]:
    """Split ``text`` into (front-matter mapping, remaining body)."""
    lines = text.splitlines(keepends=True)
    if not lines or lines[0].rstrip("\r\n") != FRONT_MATTER_DELIMITER:
        raise ConfigurationError("Unit file must start with a '---' front-matter block")

    for i in range(1, len(lines)):
        if lines[i].rstrip("\r\n") == FRONT_MATTER_DELIMITER:
            header = "".join(lines[1:i])
            body = "".join(lines[i + 1:])
            break
    else:
        raise ConfigurationError("Unterminated front-matter block")

    try:
        meta = yaml.safe_load(header) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid front matter: {e}") from e
    if not isinstance(meta, dict):
        raise ConfigurationError("Front matter must be a mapping")
    return meta, body


def validate_target(target: str) -> None:
    """Reject absolute targets and anything that escapes the tree root."""
    if not target or not target.strip():
        raise ConfigurationError("Unit target path is empty")
    path = PurePosixPath(target.replace("\\", "/"))
    if path.is_absolute() or (path.parts and path.parts[0].endswith(":")):
        raise ConfigurationError(f"Unit target must be relative: {target}")
    if ".." in path.parts:
        raise ConfigurationError(f"Unit target cannot contain '..': {target}")


def _check_anchor_stable(anchor: str, hunks) -> None:
    """The diff must leave the anchor count unchanged in both directions.

    An anchor copied into added lines occurs twice once the unit is applied,
    and an anchor only in removed lines disappears. Either way the applied
    state can no longer be recognised.
    """
    added = "\n".join(line for hunk in hunks for line in hunk.added)
    removed = "\n".join(line for hunk in hunks for line in hunk.removed)
    if added.count(anchor) != removed.count(anchor):
        raise ConfigurationError(
            f"Anchor {anchor!r} must not be added or removed by the diff "
            f"(added {added.count(anchor)}x, removed {removed.count(anchor)}x)"
        )

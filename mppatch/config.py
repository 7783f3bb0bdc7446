"""Settings — where units live, what the target tree looks like, where to record.

Settings come from an optional YAML file (``mppatch.yaml`` in the working
directory by default) and are overridden by CLI options::

    patches_dir: ./patches
    marker_dir: webrtc-sys
    ledger_path: ~/.mppatch/ledger.jsonl
    upstream_url: https://github.com/livekit/rust-sdks.git
    upstream_ref: main
    fetch_timeout: 300
    webhook_url: https://tracker.example.com/hooks/mppatch
    webhook_secret: ""
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from pathlib import Path

import yaml

from mppatch.engine.tree import DEFAULT_MARKER_DIR
from mppatch.errors import ConfigurationError
from mppatch.sync.drift import DEFAULT_FETCH_TIMEOUT, DEFAULT_UPSTREAM_URL
from mppatch.sync.ledger import DEFAULT_LEDGER_PATH
from mppatch.sync.notifier import LogNotifier, Notifier, WebhookNotifier
from mppatch.units.loader import DEFAULT_PATCHES_DIR

DEFAULT_CONFIG_FILE = "mppatch.yaml"


@dataclass(frozen=True)
class Settings:
    """Resolved mppatch settings."""

    patches_dir: Path = DEFAULT_PATCHES_DIR
    marker_dir: str = DEFAULT_MARKER_DIR
    ledger_path: Path = DEFAULT_LEDGER_PATH
    upstream_url: str = DEFAULT_UPSTREAM_URL
    upstream_ref: str = "main"
    fetch_timeout: float = DEFAULT_FETCH_TIMEOUT
    webhook_url: str = ""
    webhook_secret: str = ""

    def with_overrides(self, **overrides) -> "Settings":
        """Return a copy with every non-None override applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return _coerce(replace(self, **changes)) if changes else self

    def notifier(self) -> Notifier:
        if self.webhook_url:
            return WebhookNotifier(self.webhook_url, secret=self.webhook_secret)
        return LogNotifier()


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings from a YAML file.

    When ``path`` is None, ``mppatch.yaml`` in the working directory is used if
    present; otherwise defaults apply. An explicit path that does not exist is
    a configuration error.
    """
    if path is None:
        candidate = Path.cwd() / DEFAULT_CONFIG_FILE
        if not candidate.is_file():
            return Settings()
        path = candidate

    path = Path(path)
    if not path.is_file():
        raise ConfigurationError(f"Config file not found: {path}")

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"{path}: top level must be a mapping")

    known = {f.name for f in fields(Settings)}
    unknown = set(data) - known
    if unknown:
        raise ConfigurationError(f"{path}: unknown setting(s): {', '.join(sorted(unknown))}")

    base = path.parent
    for key in ("patches_dir", "ledger_path"):
        if data.get(key):
            resolved = Path(str(data[key])).expanduser()
            data[key] = resolved if resolved.is_absolute() else base / resolved

    return _coerce(Settings(**data))


def _coerce(settings: Settings) -> Settings:
    """Normalise types, rejecting values that cannot be used."""
    try:
        timeout = float(settings.fetch_timeout)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(
            f"fetch_timeout must be a number, got {settings.fetch_timeout!r}"
        ) from e
    if timeout <= 0:
        raise ConfigurationError("fetch_timeout must be positive")

    for key in ("marker_dir", "upstream_url", "upstream_ref", "webhook_url", "webhook_secret"):
        value = getattr(settings, key)
        if not isinstance(value, str):
            raise ConfigurationError(f"{key} must be a string, got {value!r}")

    return replace(
        settings,
        patches_dir=Path(settings.patches_dir).expanduser(),
        ledger_path=Path(settings.ledger_path).expanduser(),
        fetch_timeout=timeout,
    )

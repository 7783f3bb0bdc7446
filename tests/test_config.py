"""Tests for settings loading."""

import tempfile
from pathlib import Path

import pytest
import yaml

from mppatch.config import Settings, load_settings
from mppatch.errors import ConfigurationError
from mppatch.sync.notifier import LogNotifier, WebhookNotifier
from mppatch.units.loader import DEFAULT_PATCHES_DIR


def _write_config(directory: Path, data) -> Path:
    path = directory / "mppatch.yaml"
    path.write_text(yaml.dump(data), encoding="utf-8")
    return path


def test_defaults_without_config_file(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    settings = load_settings()
    assert settings == Settings()
    assert settings.patches_dir == DEFAULT_PATCHES_DIR
    assert settings.marker_dir == "webrtc-sys"
    assert settings.upstream_ref == "main"
    assert settings.fetch_timeout == 300.0


def test_config_in_working_directory_is_picked_up(monkeypatch, tmp_path):
    _write_config(tmp_path, {"upstream_ref": "release-1.0"})
    monkeypatch.chdir(tmp_path)
    assert load_settings().upstream_ref == "release-1.0"


def test_relative_paths_resolve_against_config_file():
    with tempfile.TemporaryDirectory() as tmp:
        d = Path(tmp)
        path = _write_config(
            d,
            {"patches_dir": "patches", "ledger_path": "state/ledger.jsonl", "fetch_timeout": 30},
        )
        settings = load_settings(path)
        assert settings.patches_dir == d / "patches"
        assert settings.ledger_path == d / "state" / "ledger.jsonl"
        assert settings.fetch_timeout == 30.0


def test_explicit_missing_file_is_an_error(tmp_path):
    with pytest.raises(ConfigurationError, match="not found"):
        load_settings(tmp_path / "nope.yaml")


def test_unknown_keys_are_rejected(tmp_path):
    path = _write_config(tmp_path, {"upstream_ref": "main", "colour": "blue"})
    with pytest.raises(ConfigurationError, match="colour"):
        load_settings(path)


@pytest.mark.parametrize(
    "data",
    [
        {"fetch_timeout": "soon"},
        {"fetch_timeout": 0},
        {"upstream_url": 42},
        ["not", "a", "mapping"],
    ],
)
def test_bad_values_are_rejected(tmp_path, data):
    path = _write_config(tmp_path, data)
    with pytest.raises(ConfigurationError):
        load_settings(path)


def test_invalid_yaml(tmp_path):
    path = tmp_path / "mppatch.yaml"
    path.write_text("upstream_ref: [unclosed\n", encoding="utf-8")
    with pytest.raises(ConfigurationError, match="Invalid YAML"):
        load_settings(path)


def test_overrides_skip_none():
    settings = Settings().with_overrides(upstream_ref="v2", fetch_timeout=None)
    assert settings.upstream_ref == "v2"
    assert settings.fetch_timeout == 300.0
    assert Settings().with_overrides(marker_dir=None) == Settings()


def test_notifier_selection():
    assert isinstance(Settings().notifier(), LogNotifier)
    notifier = Settings(webhook_url="https://tracker.example.com/hook", webhook_secret="s").notifier()
    assert isinstance(notifier, WebhookNotifier)
    assert notifier.secret == "s"

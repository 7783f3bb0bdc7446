"""Tests for the drift monitor and upstream snapshots."""

import shutil
import tempfile
from pathlib import Path

import pytest
from git import Repo

from mppatch.errors import ConfigurationError, FetchError
from mppatch.models.run import RunMode, Verdict
from mppatch.sync.drift import DriftMonitor
from mppatch.sync.ledger import VersionLedger
from mppatch.sync.notifier import RecordingNotifier
from mppatch.utils.git_ops import Snapshot, fetch_snapshot

from conftest import FIXTURE_TREE

REVISION = "1234567890abcdef1234567890abcdef12345678"


def _fake_fetcher(edit=None, revision=REVISION):
    """Return a fetcher that serves a copy of the fixture tree."""
    calls = []

    def fetch(url, ref, timeout):
        calls.append((url, ref, timeout))
        snap_dir = Path(tempfile.mkdtemp(prefix="mppatch_test_snap_"))
        shutil.copytree(FIXTURE_TREE, snap_dir, dirs_exist_ok=True)
        if edit:
            edit(snap_dir)
        return Snapshot(local_path=snap_dir, revision=revision, ref=ref, source_url=url)

    fetch.calls = calls
    return fetch


def _failing_fetcher(url, ref, timeout):
    raise FetchError(f"Timed out fetching {url}@{ref}")


def _break_encoder(root):
    path = root / "webrtc-sys" / "src" / "video_encoder_factory.cpp"
    text = path.read_text(encoding="utf-8")
    path.write_text(text.replace("nvidia/nvidia_encoder_factory.h", "nvidia/encoder.h"), encoding="utf-8")


def _monitor(tmp_path, units, fetcher, notifier=None):
    return DriftMonitor(
        units,
        VersionLedger(tmp_path / "ledger.jsonl"),
        upstream_url="https://example.com/rust-sdks.git",
        notifier=notifier or RecordingNotifier(),
        fetch_timeout=42,
        fetcher=fetcher,
    )


def test_clean_check_records_entry_without_notifying(tmp_path, shipped_units):
    notifier = RecordingNotifier()
    fetcher = _fake_fetcher()
    monitor = _monitor(tmp_path, shipped_units, fetcher, notifier)

    entry = monitor.check("main")

    assert entry.verdict is Verdict.CLEAN
    assert entry.revision == REVISION
    assert entry.ref == "main"
    assert entry.summary.mode is RunMode.DRY_RUN
    assert entry.summary.counts() == {"applied": 3, "skipped": 0, "failed": 0}
    assert notifier.events == []
    assert fetcher.calls == [("https://example.com/rust-sdks.git", "main", 42)]
    assert monitor.ledger.is_known_good(REVISION) is True


def test_conflict_check_records_and_notifies(tmp_path, shipped_units):
    notifier = RecordingNotifier()
    monitor = _monitor(tmp_path, shipped_units, _fake_fetcher(edit=_break_encoder), notifier)

    entry = monitor.check("v1.2.0")

    assert entry.verdict is Verdict.CONFLICT
    assert entry.failed_units == ("register-rockchip-encoder-factory",)
    assert monitor.ledger.is_known_good(REVISION) is False

    assert len(notifier.events) == 1
    event = notifier.events[0]
    assert event.revision == REVISION
    assert event.ref == "v1.2.0"
    assert event.failed_units == ("register-rockchip-encoder-factory",)


def test_fetch_failure_records_nothing(tmp_path, shipped_units):
    notifier = RecordingNotifier()
    monitor = _monitor(tmp_path, shipped_units, _failing_fetcher, notifier)

    with pytest.raises(FetchError):
        monitor.check("main")

    assert monitor.ledger.history() == []
    assert notifier.events == []


def test_invalid_snapshot_records_nothing(tmp_path, shipped_units):
    def drop_marker(root):
        shutil.rmtree(root / "webrtc-sys")

    monitor = _monitor(tmp_path, shipped_units, _fake_fetcher(edit=drop_marker))
    with pytest.raises(ConfigurationError):
        monitor.check("main")
    assert monitor.ledger.history() == []


def test_snapshot_is_removed_after_check(tmp_path, shipped_units):
    paths = []

    def fetch(url, ref, timeout):
        snap = _fake_fetcher()(url, ref, timeout)
        paths.append(snap.local_path)
        return snap

    _monitor(tmp_path, shipped_units, fetch).check("main")
    assert paths and not paths[0].exists()


def test_reverse_mode_is_rejected(tmp_path, shipped_units):
    with pytest.raises(ValueError):
        DriftMonitor(shipped_units, VersionLedger(tmp_path / "l.jsonl"), mode=RunMode.REVERSE)


# --- Real git snapshots ---


def _upstream_repo(root: Path) -> Repo:
    shutil.copytree(FIXTURE_TREE, root)
    repo = Repo.init(root)
    with repo.config_writer() as cw:
        cw.set_value("user", "name", "mppatch tests")
        cw.set_value("user", "email", "tests@example.com")
    repo.git.add(A=True)
    repo.index.commit("Import rust-sdks fixture")
    repo.create_tag("v1")
    return repo


def test_fetch_snapshot_from_local_repo(tmp_path, shipped_units):
    upstream = _upstream_repo(tmp_path / "upstream")
    url = (tmp_path / "upstream").as_uri()

    with fetch_snapshot(url, "v1", timeout=60) as snap:
        assert snap.revision == upstream.head.commit.hexsha
        assert (snap.local_path / "webrtc-sys" / "build.rs").is_file()
        local_path = snap.local_path
    assert not local_path.exists()

    monitor = DriftMonitor(
        shipped_units,
        VersionLedger(tmp_path / "ledger.jsonl"),
        upstream_url=url,
        notifier=RecordingNotifier(),
        fetch_timeout=60,
    )
    entry = monitor.check("v1")
    assert entry.is_clean
    assert entry.revision == upstream.head.commit.hexsha


def test_fetch_snapshot_failure_raises_fetch_error(tmp_path):
    missing = (tmp_path / "does-not-exist").as_uri()
    with pytest.raises(FetchError):
        fetch_snapshot(missing, "main", timeout=30)


def test_option_like_ref_is_never_passed_to_git(tmp_path):
    _upstream_repo(tmp_path / "upstream")
    url = (tmp_path / "upstream").as_uri()
    marker = tmp_path / "upload-pack-ran"

    with pytest.raises(ConfigurationError, match="ref"):
        fetch_snapshot(url, f"--upload-pack=touch {marker}; git-upload-pack", timeout=30)
    assert not marker.exists()

    for ref in ("", "main branch", "main\n", "+refs/heads/*:refs/x/*"):
        with pytest.raises(ConfigurationError):
            fetch_snapshot(url, ref, timeout=30)


def test_option_like_url_is_rejected(tmp_path):
    with pytest.raises(ConfigurationError, match="URL"):
        fetch_snapshot(f"--upload-pack=touch {tmp_path / 'x'}", "main", timeout=30)
    assert not (tmp_path / "x").exists()


def test_unsafe_protocol_is_a_fetch_error(tmp_path):
    marker = tmp_path / "ext-ran"
    with pytest.raises(FetchError, match="Refusing"):
        fetch_snapshot(f"ext::sh -c touch% {marker}", "main", timeout=30)
    assert not marker.exists()


def test_bad_ref_records_nothing(tmp_path, shipped_units):
    ledger = VersionLedger(tmp_path / "ledger.jsonl")
    monitor = DriftMonitor(
        shipped_units,
        ledger,
        upstream_url=(tmp_path / "nowhere").as_uri(),
        notifier=RecordingNotifier(),
    )
    with pytest.raises(ConfigurationError):
        monitor.check("--upload-pack=true")
    assert ledger.history() == []

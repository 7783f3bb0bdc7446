"""Tests for the unified diff text engine."""

import pytest

from mppatch.errors import (
    AnchorAmbiguous,
    AnchorMissing,
    ConfigurationError,
    HunkAmbiguous,
    HunkMismatch,
)
from mppatch.units.diff import apply_unit, check_anchor, newline_style, parse_diff

from conftest import make_unit

DEMO = "webrtc-sys/demo.txt"

SIMPLE_DIFF = """\
diff --git a/webrtc-sys/demo.txt b/webrtc-sys/demo.txt
index 1111111..2222222 100644
--- a/webrtc-sys/demo.txt
+++ b/webrtc-sys/demo.txt
@@ -1,4 +1,5 @@
 alpha
 beta
+inserted
 gamma
 delta
"""


def _insert_unit(anchor="alpha"):
    return make_unit(
        "insert", anchor, DEMO, [(1, [" alpha", " beta", "+inserted", " gamma"])]
    )


# --- Parsing ---


def test_parse_single_file_diff():
    parsed = parse_diff(SIMPLE_DIFF)
    assert parsed.path == "webrtc-sys/demo.txt"
    assert parsed.old_path == parsed.new_path
    assert len(parsed.hunks) == 1

    hunk = parsed.hunks[0]
    assert (hunk.old_start, hunk.old_count, hunk.new_start, hunk.new_count) == (1, 4, 1, 5)
    assert hunk.added == ["inserted"]
    assert hunk.removed == []
    assert hunk.before() == ["alpha", "beta", "gamma", "delta"]
    assert hunk.after() == ["alpha", "beta", "inserted", "gamma", "delta"]
    assert hunk.before(reverse=True) == hunk.after()


def test_parse_treats_empty_lines_as_blank_context():
    diff = "--- a/f\n+++ b/f\n@@ -1,3 +1,4 @@\n a\n\n+b\n c\n"
    hunk = parse_diff(diff).hunks[0]
    assert hunk.before() == ["a", "", "c"]


def test_parse_skips_no_newline_marker():
    diff = "--- a/f\n+++ b/f\n@@ -1,2 +1,3 @@\n a\n+b\n c\n\\ No newline at end of file\n"
    assert parse_diff(diff).hunks[0].after() == ["a", "b", "c"]


def test_parse_rejects_multi_file_diff():
    diff = SIMPLE_DIFF + SIMPLE_DIFF.replace("demo.txt", "other.txt")
    with pytest.raises(ConfigurationError, match="more than one file"):
        parse_diff(diff)


def test_parse_rejects_truncated_hunk():
    diff = "--- a/f\n+++ b/f\n@@ -1,4 +1,5 @@\n a\n+b\n c\n"
    with pytest.raises(ConfigurationError, match="truncated"):
        parse_diff(diff)


def test_parse_rejects_hunk_without_trailing_context():
    diff = "--- a/f\n+++ b/f\n@@ -1,1 +1,2 @@\n a\n+b\n"
    with pytest.raises(ConfigurationError, match="context line"):
        parse_diff(diff)


def test_parse_rejects_hunk_without_changes():
    diff = "--- a/f\n+++ b/f\n@@ -1,2 +1,2 @@\n a\n b\n"
    with pytest.raises(ConfigurationError, match="no changes"):
        parse_diff(diff)


def test_parse_rejects_missing_file_header():
    with pytest.raises(ConfigurationError):
        parse_diff("@@ -1,2 +1,3 @@\n a\n+b\n c\n")


def test_parse_rejects_malformed_hunk_header():
    with pytest.raises(ConfigurationError, match="Malformed"):
        parse_diff("--- a/f\n+++ b/f\n@@ nonsense @@\n a\n")


# --- Anchors ---


def test_check_anchor():
    check_anchor("one\ntwo\n", "two")
    with pytest.raises(AnchorMissing):
        check_anchor("one\ntwo\n", "three")
    with pytest.raises(AnchorAmbiguous):
        check_anchor("two\ntwo\n", "two")


# --- Application ---


def test_apply_forward_and_reverse_are_inverse():
    original = "alpha\nbeta\ngamma\ndelta\n"
    unit = _insert_unit()

    patched = apply_unit(original, unit)
    assert patched == "alpha\nbeta\ninserted\ngamma\ndelta\n"
    assert apply_unit(patched, unit, reverse=True) == original


def test_apply_fails_when_content_diverged():
    unit = _insert_unit()
    with pytest.raises(HunkMismatch):
        apply_unit("alpha\nBETA\ngamma\n", unit)


def test_apply_fails_on_missing_anchor_before_matching_hunks():
    unit = _insert_unit(anchor="omega")
    with pytest.raises(AnchorMissing):
        apply_unit("alpha\nbeta\ngamma\n", unit)


def test_apply_rejects_ambiguous_hunk_location():
    unit = make_unit("twice", "header", DEMO, [(2, [" x", "+z", " y"])])
    with pytest.raises(HunkAmbiguous):
        apply_unit("header\nx\ny\nx\ny\n", unit)


def test_hunks_are_matched_in_order():
    unit = make_unit(
        "two-hunks",
        "head",
        DEMO,
        [(1, [" head", "+one", " a"]), (4, [" b", "+two", " c"])],
    )
    assert apply_unit("head\na\nb\nc\n", unit) == "head\none\na\nb\ntwo\nc\n"

    # Second hunk's context sits before the first hunk
    with pytest.raises(HunkMismatch):
        apply_unit("b\nc\nhead\na\n", unit)


def test_apply_preserves_crlf_line_endings():
    original = "alpha\r\nbeta\r\ngamma\r\ndelta\r\n"
    unit = _insert_unit()

    patched = apply_unit(original, unit)
    assert patched == "alpha\r\nbeta\r\ninserted\r\ngamma\r\ndelta\r\n"
    assert apply_unit(patched, unit, reverse=True) == original


def test_apply_keeps_missing_final_newline():
    original = "alpha\nbeta\ngamma"
    patched = apply_unit(original, _insert_unit())
    assert patched == "alpha\nbeta\ninserted\ngamma"


def test_newline_style():
    assert newline_style(["a\n", "b\n"]) == "\n"
    assert newline_style(["a\r\n", "b\r\n", "c\n"]) == "\r\n"
    assert newline_style([]) == "\n"

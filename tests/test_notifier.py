"""Tests for compatibility-event notifiers."""

import hashlib
import hmac
import json

from mppatch.sync.notifier import (
    EVENT_TYPE,
    CompatibilityEvent,
    LogNotifier,
    RecordingNotifier,
    WebhookNotifier,
)

EVENT = CompatibilityEvent(
    revision="f" * 40,
    failed_units=("register-rockchip-encoder-factory",),
    timestamp="2026-03-01T12:00:00+00:00",
    ref="main",
)


def test_payload_shape():
    payload = EVENT.to_payload()
    assert payload == {
        "event": EVENT_TYPE,
        "revision": "f" * 40,
        "ref": "main",
        "failedUnits": ["register-rockchip-encoder-factory"],
        "timestamp": "2026-03-01T12:00:00+00:00",
    }


def test_recording_notifier_keeps_events():
    notifier = RecordingNotifier()
    delivery = notifier.notify(EVENT)
    assert delivery.success
    assert notifier.events == [EVENT]


def test_log_notifier_logs_a_warning(caplog):
    with caplog.at_level("WARNING", logger="mppatch.sync.notifier"):
        delivery = LogNotifier().notify(EVENT)
    assert delivery.success
    assert "register-rockchip-encoder-factory" in caplog.text


def test_webhook_signature():
    body = b'{"event": "upstream.conflict"}'
    expected = "sha256=" + hmac.new(b"s3cret", body, hashlib.sha256).hexdigest()
    assert WebhookNotifier.compute_signature(body, "s3cret") == expected


def test_webhook_request_is_signed():
    notifier = WebhookNotifier("https://tracker.example.com/hook", secret="s3cret")
    req = notifier.build_request(EVENT)

    assert req.get_method() == "POST"
    assert req.full_url == "https://tracker.example.com/hook"
    assert json.loads(req.data) == EVENT.to_payload()
    assert req.get_header("X-mppatch-event") == EVENT_TYPE
    assert req.get_header("X-mppatch-signature") == WebhookNotifier.compute_signature(
        req.data, "s3cret"
    )


def test_webhook_without_secret_is_unsigned():
    req = WebhookNotifier("https://tracker.example.com/hook").build_request(EVENT)
    assert req.get_header("X-mppatch-signature") is None


def test_webhook_delivery_failure_is_recorded_not_raised():
    notifier = WebhookNotifier("http://127.0.0.1:9/unreachable", timeout=1.0)
    delivery = notifier.notify(EVENT)
    assert not delivery.success
    assert notifier.deliveries == [delivery]

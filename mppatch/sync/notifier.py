"""Compatibility notifications for detected upstream drift.

When a drift check ends in a Conflict verdict, a ``CompatibilityEvent`` is
handed to a notifier. Delivery to the issue tracker is external; mppatch ships:

- ``LogNotifier``: writes the event to the log (default)
- ``WebhookNotifier``: POSTs the event as JSON, signed with HMAC-SHA256,
  via ``urllib.request`` (no extra dependencies)
- ``RecordingNotifier``: keeps events in memory (tests, embedding)

Webhook delivery failures are recorded on the returned delivery object and
logged. They never turn a check into an error.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import time
import urllib.error
import urllib.request
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)

EVENT_TYPE = "upstream.conflict"


@dataclass(frozen=True)
class CompatibilityEvent:
    """Structured event describing an upstream revision that broke the unit set."""

    revision: str
    failed_units: tuple[str, ...]
    timestamp: str
    ref: str = ""

    def to_payload(self) -> dict[str, Any]:
        return {
            "event": EVENT_TYPE,
            "revision": self.revision,
            "ref": self.ref,
            "failedUnits": list(self.failed_units),
            "timestamp": self.timestamp,
        }


@dataclass
class NotificationDelivery:
    """Record of a single delivery attempt."""

    id: str
    event: str
    payload: dict[str, Any] = field(default_factory=dict)
    response_status: int = 0
    response_body: str = ""
    success: bool = False
    delivered_at: str = ""
    duration_ms: int = 0


class Notifier:
    """Base notifier. Subclasses deliver the event somewhere."""

    def notify(self, event: CompatibilityEvent) -> NotificationDelivery:
        raise NotImplementedError


class LogNotifier(Notifier):
    """Reports the event through the ``mppatch`` logger."""

    def notify(self, event: CompatibilityEvent) -> NotificationDelivery:
        logger.warning(
            "Upstream revision %s (%s) conflicts: %s",
            event.revision[:12],
            event.ref or "?",
            ", ".join(event.failed_units),
        )
        return NotificationDelivery(
            id=uuid.uuid4().hex[:16],
            event=EVENT_TYPE,
            payload=event.to_payload(),
            success=True,
            delivered_at=datetime.now(timezone.utc).isoformat(),
        )


class RecordingNotifier(Notifier):
    """Collects events in memory."""

    def __init__(self) -> None:
        self.events: list[CompatibilityEvent] = []

    def notify(self, event: CompatibilityEvent) -> NotificationDelivery:
        self.events.append(event)
        return NotificationDelivery(
            id=uuid.uuid4().hex[:16],
            event=EVENT_TYPE,
            payload=event.to_payload(),
            success=True,
            delivered_at=datetime.now(timezone.utc).isoformat(),
        )


class WebhookNotifier(Notifier):
    """POSTs events to an issue-tracker webhook."""

    def __init__(self, url: str, secret: str = "", timeout: float = 10.0) -> None:
        self.url = url
        self.secret = secret
        self.timeout = timeout
        self.deliveries: list[NotificationDelivery] = []

    @staticmethod
    def compute_signature(payload_bytes: bytes, secret: str) -> str:
        """Compute HMAC-SHA256 signature for a payload."""
        mac = hmac.new(secret.encode("utf-8"), payload_bytes, hashlib.sha256)
        return f"sha256={mac.hexdigest()}"

    def build_request(self, event: CompatibilityEvent) -> urllib.request.Request:
        body = json.dumps(event.to_payload()).encode("utf-8")
        headers: dict[str, str] = {
            "Content-Type": "application/json",
            "X-Mppatch-Event": EVENT_TYPE,
        }
        if self.secret:
            headers["X-Mppatch-Signature"] = self.compute_signature(body, self.secret)
        return urllib.request.Request(self.url, data=body, headers=headers, method="POST")

    def notify(self, event: CompatibilityEvent) -> NotificationDelivery:
        req = self.build_request(event)
        start = time.monotonic()
        status = 0
        resp_body = ""
        success = False

        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                status = resp.status
                resp_body = resp.read().decode("utf-8", errors="replace")[:2000]
                success = 200 <= status < 300
        except urllib.error.HTTPError as exc:
            status = exc.code
            resp_body = str(exc)[:2000]
        except (urllib.error.URLError, OSError) as exc:
            resp_body = str(exc)[:2000]

        delivery = NotificationDelivery(
            id=uuid.uuid4().hex[:16],
            event=EVENT_TYPE,
            payload=event.to_payload(),
            response_status=status,
            response_body=resp_body,
            success=success,
            delivered_at=datetime.now(timezone.utc).isoformat(),
            duration_ms=int((time.monotonic() - start) * 1000),
        )
        self.deliveries.append(delivery)

        if success:
            logger.info("Notified %s about revision %s", self.url, event.revision[:12])
        else:
            logger.error(
                "Webhook delivery to %s failed (status %s): %s",
                self.url, status, resp_body,
            )
        return delivery


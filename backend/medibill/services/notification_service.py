# Overview: In-process change notifications fanned out per tenant.

"""
Change notifications.

Services publish after their transaction commits. Delivery is best effort:
a failing subscriber is logged and skipped, and publishing never raises into
the caller. Push transports (SSE, websockets) subscribe here; none ships in
this package.
"""

from __future__ import annotations

import threading
from collections import defaultdict
from typing import Any, Callable

from flask import current_app, has_app_context

from ..time_utils import to_utc_z, utcnow

CHANGE_KINDS = (
    "product_change",
    "sale_change",
    "refund_change",
    "customer_change",
    "inventory_change",
)

Subscriber = Callable[[dict[str, Any]], None]


class NotificationHub:
    """Thread-safe registry of per-tenant subscribers."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: dict[int, list[Subscriber]] = defaultdict(list)

    def subscribe(self, tenant_id: int, callback: Subscriber) -> Callable[[], None]:
        with self._lock:
            self._subscribers[tenant_id].append(callback)

        def _unsubscribe() -> None:
            with self._lock:
                callbacks = self._subscribers.get(tenant_id, [])
                if callback in callbacks:
                    callbacks.remove(callback)
                if not callbacks:
                    self._subscribers.pop(tenant_id, None)

        return _unsubscribe

    def subscriber_count(self, tenant_id: int) -> int:
        with self._lock:
            return len(self._subscribers.get(tenant_id, []))

    def publish(self, tenant_id: int, message: dict[str, Any]) -> int:
        with self._lock:
            callbacks = list(self._subscribers.get(tenant_id, []))

        delivered = 0
        for callback in callbacks:
            try:
                callback(message)
                delivered += 1
            except Exception:  # noqa: BLE001
                _log_exception("Notification subscriber failed for tenant %s", tenant_id)
        return delivered

    def clear(self) -> None:
        with self._lock:
            self._subscribers.clear()


hub = NotificationHub()


def _log_exception(msg: str, *args) -> None:
    if has_app_context():
        current_app.logger.exception(msg, *args)


def notify_tenant(tenant_id: int | None, change_kind: str, action: str, data: Any) -> int:
    """
    Publish `change_kind`/`action` to everyone listening on `tenant_id`.

    Returns the number of subscribers reached.
    """
    if tenant_id is None:
        return 0
    try:
        if change_kind not in CHANGE_KINDS:
            raise ValueError(f"Unknown change kind: {change_kind}")
        message = {
            "type": change_kind,
            "action": action,
            "data": data,
            "timestamp": to_utc_z(utcnow()),
        }
        return hub.publish(tenant_id, message)
    except Exception:  # noqa: BLE001
        _log_exception("Failed to publish %s/%s for tenant %s", change_kind, action, tenant_id)
        return 0

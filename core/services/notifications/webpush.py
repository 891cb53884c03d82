"""Web Push sender backed by pywebpush (VAPID)."""

from __future__ import annotations

import json
import logging
from typing import Any

from pywebpush import WebPushException, webpush

from core.config import Settings
from core.services.notifications.base import DeliveryResult, PushSender, SubscriptionRecord

logger = logging.getLogger(__name__)

# push services answer 404/410 once a browser has dropped the subscription
GONE_STATUS_CODES = {404, 410}


def _status_code(exc: WebPushException) -> int | None:
    response = getattr(exc, "response", None)
    code = getattr(response, "status_code", None)
    return int(code) if code is not None else None


class WebPushSender(PushSender):
    def __init__(self, vapid_private_key: str, vapid_subject: str, ttl: int = 86400, timeout: float = 10.0):
        self.vapid_private_key = vapid_private_key
        self.vapid_claims = {"sub": vapid_subject}
        self.ttl = ttl
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "WebPushSender":
        if not settings.vapid_private_key:
            raise ValueError("VAPID_PRIVATE_KEY is not configured")
        return cls(
            vapid_private_key=settings.vapid_private_key,
            vapid_subject=settings.vapid_subject,
            ttl=settings.push_ttl_seconds,
        )

    def deliver(self, subscription: SubscriptionRecord, payload: dict[str, Any]) -> DeliveryResult:
        try:
            webpush(
                subscription_info=subscription.subscription_info(),
                data=json.dumps(payload),
                vapid_private_key=self.vapid_private_key,
                vapid_claims=dict(self.vapid_claims),
                ttl=self.ttl,
                timeout=self.timeout,
            )
        except WebPushException as exc:
            status = _status_code(exc)
            if status in GONE_STATUS_CODES:
                return DeliveryResult.gone(subscription.id, f"HTTP {status}")
            return DeliveryResult.transient(subscription.id, f"HTTP {status}: {exc}" if status else str(exc))
        except Exception as exc:
            return DeliveryResult.transient(subscription.id, f"{type(exc).__name__}: {exc}")
        return DeliveryResult.delivered(subscription.id)

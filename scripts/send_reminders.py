from __future__ import annotations

import json

from core.config import get_settings
from core.db import session_scope
from core.logging_config import setup_logging
from core.services.academy_clock import utcnow
from core.services.notifications.scheduler import run_notification_pass
from core.services.notifications.store import SqlNotificationStore
from core.services.notifications.webpush import WebPushSender


def main() -> int:
    settings = get_settings()
    setup_logging(settings.log_level)
    try:
        sender = WebPushSender.from_settings(settings)
    except ValueError as exc:
        print(json.dumps({"error": str(exc)}))
        return 1

    with session_scope() as s:
        summary = run_notification_pass(utcnow(), SqlNotificationStore(s), sender, settings=settings)

    print(json.dumps(summary.to_dict()))
    return 0 if summary.reason != "internal_error" else 1


if __name__ == "__main__":
    raise SystemExit(main())

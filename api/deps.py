from __future__ import annotations

import logging
from collections.abc import Generator

from fastapi import HTTPException
from sqlalchemy.orm import Session

from core.config import get_settings
from core.db import get_session_factory
from core.services.academy_clock import AcademyClock
from core.services.notifications.base import PushSender
from core.services.notifications.webpush import WebPushSender

logger = logging.getLogger(__name__)


def get_db() -> Generator[Session, None, None]:
    session = get_session_factory()()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_clock() -> AcademyClock:
    return AcademyClock(get_settings().academy_timezone)


def get_push_sender() -> PushSender:
    try:
        return WebPushSender.from_settings(get_settings())
    except ValueError as exc:
        logger.error("Push sender unavailable: %s", exc)
        raise HTTPException(status_code=500, detail={"code": "PUSH_NOT_CONFIGURED"}) from exc

"""Fan-out of payloads to subscription endpoints.

Each (payload, endpoint) attempt is independent: attempts run on a thread pool,
every attempt returns its own DeliveryResult, and counts are reduced only after
all of them finished. A slow or failing endpoint never holds up the others.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any

from core.services.notifications.base import (
    DeliveryOutcome,
    DeliveryResult,
    PushSender,
    SubscriptionRecord,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeliveryJob:
    key: Any
    subscription: SubscriptionRecord
    payload: dict[str, Any]


@dataclass(frozen=True)
class JobResult:
    key: Any
    result: DeliveryResult


def _attempt(sender: PushSender, job: DeliveryJob) -> JobResult:
    try:
        result = sender.deliver(job.subscription, job.payload)
    except Exception as exc:
        # senders classify their own errors; anything escaping is treated as transient
        logger.warning("Push sender raised: subscription=%s error=%s", job.subscription.id, exc)
        result = DeliveryResult.transient(job.subscription.id, f"{type(exc).__name__}: {exc}")
    if result.outcome is DeliveryOutcome.TRANSIENT_FAILURE:
        logger.warning(
            "Push delivery failed: subscription=%s endpoint=%s reason=%s",
            job.subscription.id,
            job.subscription.endpoint,
            result.reason,
        )
    return JobResult(job.key, result)


def dispatch(sender: PushSender, jobs: Sequence[DeliveryJob], max_workers: int = 8) -> list[JobResult]:
    if not jobs:
        return []
    # at least two workers so one hung endpoint never serialises the rest
    workers = min(max(max_workers, 2), len(jobs))
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="push") as pool:
        return list(pool.map(lambda job: _attempt(sender, job), jobs))


def outcome_counts(results: Sequence[JobResult]) -> Counter:
    return Counter(r.result.outcome for r in results)


def gone_subscription_ids(results: Sequence[JobResult]) -> list[str]:
    seen: dict[str, None] = {}
    for r in results:
        if r.result.outcome is DeliveryOutcome.ENDPOINT_GONE:
            seen.setdefault(r.result.subscription_id, None)
    return list(seen)

"""
Model lease (time-to-live) bookkeeping.

A running model stays up while its lease is in the future; every step that
calls the model pushes the lease forward through the lease store's
compare-and-swap write so concurrent invocations never shorten it.
"""

import time
from typing import Optional

from loguru import logger

from framelabel.providers.base import LeaseStore

TTL_MIN_SECONDS = 60
TTL_MAX_SECONDS = 2 * 24 * 60 * 60
TTL_DEFAULT_SECONDS = 24 * 60 * 60

SECONDS_30 = 30
SECONDS_2MINS = 120
DETECT_CUSTOM_LABELS_TPS = 5
FRAMES_PER_MIN_PER_INFERENCE = DETECT_CUSTOM_LABELS_TPS * 60


def time_to_live(seconds: int = TTL_DEFAULT_SECONDS, now: Optional[float] = None) -> int:
    """Absolute expiry for a TTL clamped into [1 min, 2 days]."""
    now = time.time() if now is None else now
    ttl = min(max(seconds, TTL_MIN_SECONDS), TTL_MAX_SECONDS)
    return int(now + ttl)


def throughput(inference_units: Optional[int], tps: int = DETECT_CUSTOM_LABELS_TPS) -> int:
    """Frames that may be classified per second."""
    return (inference_units or 1) * tps


def initial_lease_seconds(
    total_frames: int,
    inference_units: Optional[int],
    tps: int = DETECT_CUSTOM_LABELS_TPS,
    minimum: int = SECONDS_2MINS,
) -> float:
    """Time needed to classify ``total_frames`` (at least one minute of work), never below ``minimum``."""
    frames = max(total_frames or 0, tps * 60)
    return max(frames / throughput(inference_units, tps), minimum)


async def renew_lease(lease_store: LeaseStore, resource_id: str, expiry: int) -> bool:
    accepted = await lease_store.conditional_put(resource_id, expiry)
    if accepted:
        logger.info(f"lease {resource_id} extended to {expiry}")
    else:
        logger.debug(f"lease {resource_id} already held beyond {expiry}")
    return accepted


async def refresh_lease(
    lease_store: LeaseStore,
    resource_id: str,
    lease_expiry: int,
    now: float,
    threshold: int = SECONDS_30,
    extension: int = SECONDS_2MINS,
) -> int:
    """
    Extend the lease to ``now + extension`` when it expires within ``threshold``.

    Returns the expiry the caller should track from here on. A rejected
    conditional write means a sibling already holds a longer lease, which
    keeps the model up at least as long.
    """
    t0 = int(now)
    if lease_expiry - t0 < threshold:
        new_expiry = t0 + extension
        await renew_lease(lease_store, resource_id, new_expiry)
        return new_expiry
    return lease_expiry

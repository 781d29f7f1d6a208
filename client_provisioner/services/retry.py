from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from client_provisioner.services.config import RetryPolicy
from client_provisioner.services.errors import (
    PropagationTimeoutError,
    ResourceNotFoundError,
    TransientResourceError,
)

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


async def wait_until_ready(
    probe: Callable[[], Awaitable[bool]],
    *,
    policy: RetryPolicy,
    description: str,
    sleep: Sleep = asyncio.sleep,
) -> int:
    """Poll `probe` until it reports ready or `policy.max_attempts` is spent.

    A probe that returns False, or raises a not-found/transient resource error,
    counts as "not ready yet". Any other exception propagates immediately.
    There is no sleep after the final attempt.

    Returns:
        The number of polls it took (1-based).

    Raises:
        PropagationTimeoutError: the attempt budget was exhausted.
    """

    for attempt in range(1, policy.max_attempts + 1):
        try:
            ready = await probe()
        except (ResourceNotFoundError, TransientResourceError) as exc:
            logger.debug("%s not ready (attempt %d): %s", description, attempt, exc)
            ready = False

        if ready:
            logger.info("%s is ready (attempt %d/%d)", description, attempt, policy.max_attempts)
            return attempt

        logger.info("Waiting for %s (attempt %d/%d)...", description, attempt, policy.max_attempts)
        if attempt < policy.max_attempts:
            await sleep(policy.interval_seconds)

    raise PropagationTimeoutError(description, attempts=policy.max_attempts)

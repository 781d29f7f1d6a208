from __future__ import annotations

import logging
from typing import Awaitable

from client_provisioner.services.errors import ResourceNotFoundError

logger = logging.getLogger(__name__)


async def ignore_missing(call: Awaitable[None], *, description: str) -> bool:
    """Await a delete call, treating "already gone" as success.

    Returns:
        True if something was deleted, False if it did not exist.
    """

    try:
        await call
    except ResourceNotFoundError:
        logger.info("%s already absent, nothing to delete", description)
        return False
    return True

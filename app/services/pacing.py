"""
Pacing between consecutive HouseCall Pro calls
HCP throttles bursts of line item writes and of paged reads, so they are spaced out
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from ..config import HCP_LINE_ITEM_ADD_DELAY, HCP_LINE_ITEM_DELETE_DELAY, HCP_SYNC_REQUEST_DELAY

logger = logging.getLogger(__name__)

LINE_ITEM_DELETE = "line_item_delete"
LINE_ITEM_ADD = "line_item_add"
SYNC_REQUEST = "sync_request"


class RequestPacer:
    """Fixed delay per kind of call. Pass a custom sleep to run without real waiting."""

    def __init__(
        self,
        delays: Optional[dict[str, float]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.delays = (
            delays
            if delays is not None
            else {
                LINE_ITEM_DELETE: HCP_LINE_ITEM_DELETE_DELAY,
                LINE_ITEM_ADD: HCP_LINE_ITEM_ADD_DELAY,
                SYNC_REQUEST: HCP_SYNC_REQUEST_DELAY,
            }
        )
        self._sleep = sleep

    async def pause(self, kind: str) -> None:
        delay = self.delays.get(kind, 0)
        if delay > 0:
            logger.debug(f"⏳ Pacing {kind}: {delay}s")
            await self._sleep(delay)

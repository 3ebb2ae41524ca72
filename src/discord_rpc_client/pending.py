"""Pending-request table.

Maps a nonce to the future of the caller waiting on its reply. An entry is
removed at the moment it settles, which is what guarantees at-most-once
settlement per nonce.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from .errors import RemoteError
from .protocol.events import Message

logger = logging.getLogger(__name__)


class PendingRequests:
    """Futures of in-flight requests, keyed by nonce."""

    def __init__(self) -> None:
        self._futures: dict[str, asyncio.Future[Message]] = {}

    def __len__(self) -> int:
        return len(self._futures)

    def __contains__(self, nonce: object) -> bool:
        return nonce in self._futures

    def register(self, nonce: str) -> asyncio.Future[Message]:
        """Create the future for ``nonce``.

        Raises:
            ValueError: If the nonce is already live
        """
        if nonce in self._futures:
            raise ValueError(f"Nonce already pending: {nonce}")
        future: asyncio.Future[Message] = asyncio.get_running_loop().create_future()
        self._futures[nonce] = future
        return future

    def discard(self, nonce: str) -> None:
        """Forget ``nonce`` without settling it."""
        self._futures.pop(nonce, None)

    def settle(self, message: Message) -> bool:
        """Settle the request matching ``message.nonce``.

        Returns False when the message does not belong to a pending request,
        in which case the caller should treat it as an unsolicited event.
        """
        if message.nonce is None:
            return False
        future = self._futures.pop(message.nonce, None)
        if future is None:
            return False
        if future.done():
            # Caller gave up (task cancelled); nothing left to deliver to
            return True

        if message.is_error():
            data = message.data if isinstance(message.data, dict) else None
            future.set_exception(RemoteError.from_data(data))
        else:
            future.set_result(message)
        return True

    def reject_all(self, make_error: Callable[[], BaseException]) -> int:
        """Fail every pending request with a fresh error and empty the table."""
        futures = list(self._futures.values())
        self._futures.clear()
        for future in futures:
            if not future.done():
                future.set_exception(make_error())
        if futures:
            logger.debug(f"Rejected {len(futures)} pending request(s)")
        return len(futures)

"""
Subscriber admission and membership.

New clients receive a snapshot of the current state before they are added
to the broadcast set. Snapshot read, snapshot send and registration happen
under the same lock the broadcaster holds while applying an event, so the
snapshot send gets its own short timeout.
"""

import asyncio
import json
import logging

from websockets.exceptions import ConnectionClosed
from websockets.protocol import State

logger = logging.getLogger(__name__)

# RFC 6455 "try again later"
CLOSE_TRY_AGAIN_LATER = 1013


class ConnectionRegistry:

    def __init__(self, store, max_subscribers: int = 0, snapshot_timeout: float = 2.0):
        self.store = store
        self.max_subscribers = max_subscribers
        self.snapshot_timeout = snapshot_timeout
        self.lock = asyncio.Lock()
        self._clients = set()

    def __len__(self):
        return len(self._clients)

    def __contains__(self, websocket):
        return websocket in self._clients

    async def admit(self, websocket) -> bool:
        """Send the snapshot and register the client. False if not admitted."""
        async with self.lock:
            self._prune_closed()
            full = bool(self.max_subscribers) and len(self._clients) >= self.max_subscribers
            if not full:
                snapshot = self.store.snapshot()
                try:
                    await asyncio.wait_for(websocket.send(json.dumps(snapshot.to_message())), self.snapshot_timeout)
                except (ConnectionClosed, asyncio.TimeoutError, OSError) as exc:
                    logger.warning(f"Snapshot to {peer_label(websocket)} failed: {exc!r}")
                    return False
                self._clients.add(websocket)
                logger.info(f"Client connected from {peer_label(websocket)}. Total: {len(self._clients)}")
                return True

        logger.warning(f"Rejecting client {peer_label(websocket)}: {self.max_subscribers} subscribers already connected")
        await websocket.close(CLOSE_TRY_AGAIN_LATER, "too many subscribers")
        return False

    def remove(self, websocket) -> None:
        if websocket in self._clients:
            self._clients.discard(websocket)
            logger.info(f"Client disconnected. Total: {len(self._clients)}")

    def open_subscribers(self):
        """Point-in-time list of clients still in the OPEN state."""
        self._prune_closed()
        return list(self._clients)

    def _prune_closed(self):
        for ws in [ws for ws in self._clients if ws.state is not State.OPEN]:
            self.remove(ws)


def peer_label(ws):
    address = getattr(ws, "remote_address", None)
    return address[0] if address else "unknown"

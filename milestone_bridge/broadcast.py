"""Fan-out of milestone updates to connected clients."""

import asyncio
import json
import logging
from dataclasses import dataclass

from .registry import peer_label

logger = logging.getLogger(__name__)


def update_message(event):
    return {
        "type": "update",
        "paymentPercentage": event.percentage,
        "windowName": event.window_name,
    }


@dataclass
class DeliveryReport:
    delivered: int = 0
    failed: int = 0


class Broadcaster:
    """Applies events to the store and pushes the update to every open client.

    Each client gets a message at most once. A client whose send fails or
    stalls past ``send_timeout`` is pruned and closed; the others are not
    affected and nothing is retried.
    """

    def __init__(self, store, registry, send_timeout: float = 10.0):
        self.store = store
        self.registry = registry
        self.send_timeout = send_timeout

    async def on_event(self, event) -> DeliveryReport:
        # Same lock as admission, so a joining client sees this event in
        # its snapshot or as an update, never both.
        async with self.registry.lock:
            self.store.apply(event)
            targets = self.registry.open_subscribers()
        return await self.broadcast(update_message(event), targets)

    async def broadcast(self, message, targets=None) -> DeliveryReport:
        """Send message to all connected clients."""
        if targets is None:
            targets = self.registry.open_subscribers()
        report = DeliveryReport()
        if not targets:
            return report

        msg = json.dumps(message)
        results = await asyncio.gather(*[self._send(ws, msg) for ws in targets], return_exceptions=True)

        failed = []
        for ws, result in zip(targets, results):
            if isinstance(result, Exception):
                logger.info(f"Dropping client {peer_label(ws)} after failed send: {result!r}")
                self.registry.remove(ws)
                failed.append(ws)
            else:
                report.delivered += 1
        report.failed = len(failed)

        if failed:
            await asyncio.gather(
                *[asyncio.wait_for(ws.close(1011, "send failed"), self.send_timeout) for ws in failed],
                return_exceptions=True,
            )
        return report

    async def _send(self, ws, msg):
        await asyncio.wait_for(ws.send(msg), self.send_timeout)


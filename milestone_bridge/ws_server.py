#!/usr/bin/env python3
"""
Milestone Bridge WebSocket Server

Polls the ledger for PaymentMilestoneReached events and pushes them to
connected clients in real-time. New clients get the current milestone and
visible windows on connect. A few read-only HTTP endpoints share the port.
"""

import asyncio
import functools
import logging

import websockets

from .broadcast import Broadcaster
from .config import Settings
from .errors import ConfigError
from .http_api import make_process_request
from .ledger import LedgerWatcher, PollLoop, Web3LedgerClient
from .registry import ConnectionRegistry
from .state import StateStore

logger = logging.getLogger(__name__)


async def handle_client(websocket, registry):
    """Handle a WebSocket client connection."""
    if not await registry.admit(websocket):
        return
    try:
        # Clients only listen; anything they send is ignored
        async for _message in websocket:
            pass
    except websockets.exceptions.ConnectionClosed:
        pass
    finally:
        registry.remove(websocket)


async def serve(settings, client=None, store=None):
    """Run the websocket server and the poll loop until cancelled."""
    store = store or StateStore()
    registry = ConnectionRegistry(store, settings.max_subscribers, settings.snapshot_timeout)
    broadcaster = Broadcaster(store, registry, settings.send_timeout)
    if client is None:
        client = Web3LedgerClient(settings.rpc_url, settings.contract_address, settings.rpc_timeout)
    watcher = LedgerWatcher(client, settings.rpc_timeout)
    poll_loop = PollLoop(watcher, broadcaster, settings.poll_interval, settings.retry_max_delay)

    logger.info(f"Starting WebSocket server on {settings.host}:{settings.port}...")
    async with websockets.serve(
        functools.partial(handle_client, registry=registry),
        settings.host,
        settings.port,
        process_request=make_process_request(store),
    ):
        logger.info(f"Listening for events from {settings.contract_address}")
        await poll_loop.run()


def main():
    """Main entry point."""
    try:
        settings = Settings.from_env()
    except ConfigError as exc:
        raise SystemExit(f"Invalid configuration: {exc}")

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        asyncio.run(serve(settings))
    except KeyboardInterrupt:
        logger.info("Shutting down")


if __name__ == "__main__":
    main()

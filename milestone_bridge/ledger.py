"""
Ledger polling.

Samples the chain height, pulls PaymentMilestoneReached logs for the blocks
that appeared since the last tick and hands the decoded events to the
broadcaster. Blocking web3 calls run in a worker thread with a timeout so a
hung RPC endpoint never stalls client admission.
"""

import asyncio
import logging

from eth_abi.exceptions import DecodingError
from web3 import Web3
from web3.exceptions import Web3Exception

from .errors import DecodeError, LedgerError
from .state import Event

logger = logging.getLogger(__name__)

EVENT_NAME = "PaymentMilestoneReached"
EVENT_SIGNATURE = "PaymentMilestoneReached(uint8,string)"

PAYMENT_MILESTONE_ABI = [
    {
        "anonymous": False,
        "type": "event",
        "name": EVENT_NAME,
        "inputs": [
            {"indexed": False, "internalType": "uint8", "name": "paymentPercentage", "type": "uint8"},
            {"indexed": False, "internalType": "string", "name": "windowName", "type": "string"},
        ],
    }
]


class Web3LedgerClient:
    """Thin synchronous wrapper around a web3 HTTP provider."""

    def __init__(self, rpc_url: str, contract_address: str, timeout: float = 15.0):
        self.w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout}))
        self.address = Web3.to_checksum_address(contract_address)
        self.contract = self.w3.eth.contract(address=self.address, abi=PAYMENT_MILESTONE_ABI)
        self.topic = Web3.to_hex(Web3.keccak(text=EVENT_SIGNATURE))

    def block_number(self) -> int:
        return self.w3.eth.block_number

    def fetch_logs(self, from_block: int, to_block: int):
        """Raw milestone logs for the inclusive block range, in ledger order."""
        return self.w3.eth.get_logs({
            "address": self.address,
            "topics": [self.topic],
            "fromBlock": from_block,
            "toBlock": to_block,
        })

    def decode(self, log) -> Event:
        try:
            decoded = self.contract.events.PaymentMilestoneReached().process_log(log)
            args = decoded["args"]
            return Event(args["paymentPercentage"], args["windowName"])
        except (Web3Exception, DecodingError, KeyError, TypeError, ValueError) as exc:
            raise DecodeError(f"cannot decode log: {exc}") from exc


def retry_delay(failures: int, interval: float, max_delay: float) -> float:
    """Sleep before the next tick after `failures` consecutive failed ticks."""
    if failures <= 0:
        return interval
    return min(interval * 2 ** (failures - 1), max_delay)


class LedgerWatcher:
    """Tracks the poll cursor and turns new blocks into events."""

    def __init__(self, client, rpc_timeout: float = 15.0, cursor=None):
        self.client = client
        self.rpc_timeout = rpc_timeout
        self.cursor = cursor  # last block fully processed

    async def _call(self, fn, *args):
        name = getattr(fn, "__name__", repr(fn))
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn, *args), self.rpc_timeout)
        except asyncio.TimeoutError as exc:
            raise LedgerError(f"{name} timed out after {self.rpc_timeout}s") from exc
        except Exception as exc:
            raise LedgerError(f"{name} failed: {exc}") from exc

    async def initialise(self) -> int:
        """Start from the current head; earlier events are not replayed."""
        self.cursor = await self._call(self.client.block_number)
        logger.info(f"Watching for {EVENT_NAME} events from block {self.cursor}")
        return self.cursor

    async def poll(self):
        """Return the events in blocks (cursor, head] and advance the cursor."""
        if self.cursor is None:
            await self.initialise()
            return []

        head = await self._call(self.client.block_number)
        if head <= self.cursor:
            return []

        logs = await self._call(self.client.fetch_logs, self.cursor + 1, head)

        events = []
        for log in logs:
            try:
                events.append(self.client.decode(log))
            except DecodeError as exc:
                logger.warning(f"Skipping log in blocks {self.cursor + 1}..{head}: {exc}")

        # Advance even if some entries failed to decode; the range is not re-read.
        self.cursor = head
        return events


class PollLoop:
    """Serial tick loop: poll, broadcast every event in order, sleep."""

    def __init__(self, watcher, broadcaster, poll_interval: float = 20.0,
                 retry_max_delay: float = 300.0, sleep=asyncio.sleep):
        self.watcher = watcher
        self.broadcaster = broadcaster
        self.poll_interval = poll_interval
        self.retry_max_delay = retry_max_delay
        self.failures = 0
        self._sleep = sleep

    async def tick(self) -> int:
        events = await self.watcher.poll()
        for event in events:
            logger.info(f"Milestone: {event.percentage}% for {event.window_name}")
            await self.broadcaster.on_event(event)
        return len(events)

    async def run(self):
        while True:
            try:
                await self.tick()
                self.failures = 0
            except LedgerError as exc:
                self.failures += 1
                delay = retry_delay(self.failures, self.poll_interval, self.retry_max_delay)
                logger.warning(f"Ledger poll failed ({self.failures} in a row): {exc}. Retrying in {delay:.0f}s")
                await self._sleep(delay)
                continue
            except Exception:
                self.failures += 1
                delay = retry_delay(self.failures, self.poll_interval, self.retry_max_delay)
                logger.exception(f"Unexpected error in poll tick. Retrying in {delay:.0f}s")
                await self._sleep(delay)
                continue
            await self._sleep(self.poll_interval)

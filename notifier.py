import asyncio
import json
import logging
import time
from contextlib import aclosing
from typing import AsyncIterator, Optional

from chain_providers import ChainClient
from models import Block
from prompts import STREAM_INIT_MESSAGE

logger = logging.getLogger(__name__)

_CLOSE = object()


def _now_ms() -> int:
    return int(time.time() * 1000)


def block_event(block: Block) -> dict:
    return {
        "type": "new_block",
        "blockNumber": block.number,
        "timestamp": block.timestamp,
        "transactions": len(block.transactions),
        "gasUsed": None if block.gas_used is None else str(block.gas_used),
        "hash": block.hash,
    }


def to_sse(event: dict) -> str:
    return f"data: {json.dumps(event)}\n\n"


class BlockStreamNotifier:
    """
    Per-connection push feed: `stream_init` once, `new_block` per block, and
    a `ping` every `ping_interval` seconds.

    The block subscription and the ping timer are both released in the
    generator's `finally`, which runs on explicit cancellation (`cancel` is
    set), on task cancellation when the client disconnects, and on aclose().
    """

    def __init__(self, client: ChainClient, ping_interval: float = 30.0):
        self.client = client
        self.ping_interval = ping_interval

    async def stream(
        self, cancel: Optional[asyncio.Event] = None
    ) -> AsyncIterator[dict]:
        cancel = cancel or asyncio.Event()
        queue: asyncio.Queue = asyncio.Queue()
        closed = False

        def on_block(block: Block) -> None:
            if closed:
                return
            try:
                queue.put_nowait(block_event(block))
            except Exception:
                logger.exception("Block processing error")

        def on_error(error: Exception) -> None:
            logger.error("Block watch error: %s", error)

        async def ping_loop() -> None:
            while True:
                await asyncio.sleep(self.ping_interval)
                queue.put_nowait({"type": "ping", "timestamp": _now_ms()})

        async def wait_cancel() -> None:
            await cancel.wait()
            queue.put_nowait(_CLOSE)

        yield {
            "type": "stream_init",
            "message": STREAM_INIT_MESSAGE,
            "timestamp": _now_ms(),
        }

        unwatch = self.client.watch_blocks(on_block=on_block, on_error=on_error)
        pinger = asyncio.create_task(ping_loop())
        canceller = asyncio.create_task(wait_cancel())
        logger.info("Stream opened")
        try:
            while True:
                event = await queue.get()
                if event is _CLOSE or cancel.is_set():
                    break
                yield event
        finally:
            closed = True
            unwatch()
            pinger.cancel()
            canceller.cancel()
            logger.info("Stream closed")

    async def sse(self, cancel: Optional[asyncio.Event] = None) -> AsyncIterator[str]:
        async with aclosing(self.stream(cancel)) as events:
            async for event in events:
                yield to_sse(event)

import asyncio
import json

from conftest import FakeChainClient, tx
from models import Block
from notifier import BlockStreamNotifier, block_event, to_sse


def _block(n: int) -> Block:
    return Block(
        number=n, hash=f"0x{n:064x}", timestamp=1_700_000_000 + n,
        gas_used=21000 * n, transactions=["0xa", "0xb"],
    )


async def _settle():
    for _ in range(3):
        await asyncio.sleep(0)


def _other_tasks():
    current = asyncio.current_task()
    return [t for t in asyncio.all_tasks() if t is not current and not t.done()]


def test_block_event_shape():
    event = block_event(_block(7))
    assert event == {
        "type": "new_block",
        "blockNumber": 7,
        "timestamp": 1_700_000_007,
        "transactions": 2,
        "gasUsed": "147000",
        "hash": f"0x{7:064x}",
    }


def test_block_event_counts_full_transactions():
    block = Block(number=1, transactions=[tx("0x1", "0xa", "0xb")])
    event = block_event(block)
    assert event["transactions"] == 1
    assert event["gasUsed"] is None


def test_to_sse_frames_json():
    assert to_sse({"type": "ping"}) == 'data: {"type": "ping"}\n\n'


def test_stream_init_then_blocks_in_order_then_cancel():
    async def scenario():
        client = FakeChainClient()
        notifier = BlockStreamNotifier(client, ping_interval=60)
        cancel = asyncio.Event()
        events = notifier.stream(cancel)

        init = await events.__anext__()
        assert init["type"] == "stream_init"
        assert "Connected" in init["message"]
        assert client.subscribers == []

        pending = asyncio.create_task(events.__anext__())
        await _settle()
        assert len(client.subscribers) == 1
        client.emit(_block(10))
        client.emit(_block(11))

        first = await pending
        second = await events.__anext__()
        assert [first["blockNumber"], second["blockNumber"]] == [10, 11]
        assert first["type"] == "new_block"

        cancel.set()
        try:
            await events.__anext__()
            raise AssertionError("stream should have ended")
        except StopAsyncIteration:
            pass

        assert client.subscribers == []
        delivered = client.delivered
        client.emit(_block(12))
        assert client.delivered == delivered

        await _settle()
        assert _other_tasks() == []

    asyncio.run(scenario())


def test_late_callback_after_close_is_ignored():
    async def scenario():
        client = FakeChainClient()
        events = BlockStreamNotifier(client, ping_interval=60).stream()
        await events.__anext__()
        pending = asyncio.create_task(events.__anext__())
        await _settle()
        on_block = client.subscribers[0]

        pending.cancel()
        await _settle()
        await events.aclose()

        assert client.subscribers == []
        # A block already in flight when the subscription ended.
        on_block(_block(99))
        await _settle()
        assert _other_tasks() == []

    asyncio.run(scenario())


def test_ping_is_sent_on_interval():
    async def scenario():
        client = FakeChainClient()
        events = BlockStreamNotifier(client, ping_interval=0.01).stream()
        await events.__anext__()

        ping = await asyncio.wait_for(events.__anext__(), timeout=1)
        assert ping["type"] == "ping"
        assert isinstance(ping["timestamp"], int)

        await events.aclose()
        assert client.subscribers == []
        await _settle()
        assert _other_tasks() == []

    asyncio.run(scenario())


def test_sse_close_releases_subscription():
    async def scenario():
        client = FakeChainClient()
        frames = BlockStreamNotifier(client, ping_interval=60).sse()

        first = await frames.__anext__()
        assert first.startswith("data: ") and first.endswith("\n\n")
        assert json.loads(first[len("data: "):])["type"] == "stream_init"

        pending = asyncio.create_task(frames.__anext__())
        await _settle()
        client.emit(_block(3))
        frame = await pending
        assert json.loads(frame[len("data: "):])["blockNumber"] == 3

        await frames.aclose()
        assert client.subscribers == []
        await _settle()
        assert _other_tasks() == []

    asyncio.run(scenario())


def test_concurrent_streams_have_independent_subscriptions():
    async def scenario():
        client = FakeChainClient()
        notifier = BlockStreamNotifier(client, ping_interval=60)
        a, b = notifier.stream(), notifier.stream()
        await a.__anext__()
        await b.__anext__()

        pa = asyncio.create_task(a.__anext__())
        pb = asyncio.create_task(b.__anext__())
        await _settle()
        assert len(client.subscribers) == 2

        client.emit(_block(1))
        assert (await pa)["blockNumber"] == 1
        assert (await pb)["blockNumber"] == 1

        await a.aclose()
        assert len(client.subscribers) == 1
        await b.aclose()
        assert client.subscribers == []

    asyncio.run(scenario())

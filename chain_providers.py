import asyncio
import itertools
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional, Union

import httpx

from exceptions import ChainError
from models import Block, ChainTransaction
from utils import hex_to_int

logger = logging.getLogger(__name__)


# ── Somnia Testnet ────────────────────────────────────────────────────────────

SOMNIA_TESTNET = {
    "id": 50311,
    "name": "Somnia Testnet",
    "network": "somnia-testnet",
    "symbol": "STT",
    "decimals": 18,
    "rpc_url": "https://dream-rpc.somnia.network",
    "explorer": "https://explorer.somnia.network",
    "testnet": True,
}

BlockCallback = Callable[[Block], Union[None, Awaitable[None]]]
ErrorCallback = Callable[[Exception], None]
Unwatch = Callable[[], None]


# ── Base Client ───────────────────────────────────────────────────────────────


class ChainClient(ABC):
    """Read-only view of an EVM chain."""

    @abstractmethod
    async def get_balance(self, address: str) -> int:
        ...

    @abstractmethod
    async def get_transaction_count(self, address: str) -> int:
        ...

    @abstractmethod
    async def get_block(
        self, number: int, include_transactions: bool = False
    ) -> Block:
        ...

    @abstractmethod
    async def get_block_number(self) -> int:
        ...

    @abstractmethod
    async def get_bytecode(self, address: str) -> Optional[str]:
        ...

    @abstractmethod
    def watch_blocks(
        self, on_block: BlockCallback, on_error: Optional[ErrorCallback] = None
    ) -> Unwatch:
        """Start delivering new blocks; the returned callable stops delivery."""
        ...

    async def aclose(self) -> None:
        return None


# ── JSON-RPC Client ───────────────────────────────────────────────────────────


class SomniaChainClient(ChainClient):
    def __init__(
        self,
        rpc_url: str = SOMNIA_TESTNET["rpc_url"],
        timeout: float = 15.0,
        poll_interval: float = 2.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.rpc_url = rpc_url
        self.timeout = timeout
        self.poll_interval = poll_interval
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._ids = itertools.count(1)

    async def _rpc(self, method: str, params: list) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params,
        }
        try:
            resp = await asyncio.wait_for(
                self._client.post(self.rpc_url, json=payload), self.timeout
            )
            resp.raise_for_status()
            data = resp.json()
        except asyncio.TimeoutError as e:
            raise ChainError(f"{method} timed out after {self.timeout}s", method) from e
        except httpx.HTTPError as e:
            raise ChainError(f"{method} transport failure: {e}", method) from e
        except ValueError as e:
            raise ChainError(f"{method} returned invalid JSON", method) from e

        if not isinstance(data, dict):
            raise ChainError(f"{method} returned an unexpected payload", method)
        if data.get("error"):
            err = data["error"]
            msg = err.get("message", err) if isinstance(err, dict) else err
            raise ChainError(f"{method} failed: {msg}", method)
        if "result" not in data:
            raise ChainError(f"{method} returned no result", method)
        return data["result"]

    # ── Reads ─────────────────────────────────────────────────────────────

    async def get_balance(self, address: str) -> int:
        return hex_to_int(await self._rpc("eth_getBalance", [address, "latest"]))

    async def get_transaction_count(self, address: str) -> int:
        return hex_to_int(
            await self._rpc("eth_getTransactionCount", [address, "latest"])
        )

    async def get_block_number(self) -> int:
        return hex_to_int(await self._rpc("eth_blockNumber", []))

    async def get_bytecode(self, address: str) -> Optional[str]:
        return await self._rpc("eth_getCode", [address, "latest"])

    async def get_block(
        self, number: int, include_transactions: bool = False
    ) -> Block:
        raw = await self._rpc(
            "eth_getBlockByNumber", [hex(number), include_transactions]
        )
        if not raw:
            raise ChainError(f"block {number} not found", "eth_getBlockByNumber")
        return self._parse_block(raw)

    @staticmethod
    def _parse_block(raw: dict) -> Block:
        txs: list = []
        for tx in raw.get("transactions", []):
            if isinstance(tx, str):
                txs.append(tx)
                continue
            txs.append(ChainTransaction(
                hash=tx.get("hash", ""),
                from_address=tx.get("from"),
                to_address=tx.get("to"),
                value=hex_to_int(tx.get("value")) or 0,
                block_number=hex_to_int(tx.get("blockNumber")),
                nonce=hex_to_int(tx.get("nonce")),
                gas=hex_to_int(tx.get("gas")),
                gas_price=hex_to_int(tx.get("gasPrice")),
            ))
        try:
            return Block(
                number=hex_to_int(raw.get("number")),
                hash=raw.get("hash"),
                timestamp=hex_to_int(raw.get("timestamp")) or 0,
                gas_used=hex_to_int(raw.get("gasUsed")),
                gas_limit=hex_to_int(raw.get("gasLimit")),
                transactions=txs,
            )
        except (TypeError, ValueError) as e:
            raise ChainError(f"malformed block: {e}", "eth_getBlockByNumber") from e

    # ── Block Feed (head polling) ─────────────────────────────────────────

    def watch_blocks(
        self, on_block: BlockCallback, on_error: Optional[ErrorCallback] = None
    ) -> Unwatch:
        task = asyncio.get_running_loop().create_task(
            self._poll_blocks(on_block, on_error)
        )

        def unwatch() -> None:
            task.cancel()

        return unwatch

    async def _poll_blocks(
        self, on_block: BlockCallback, on_error: Optional[ErrorCallback]
    ) -> None:
        last_seen: Optional[int] = None
        while True:
            try:
                head = await self.get_block_number()
                if last_seen is None:
                    last_seen = head - 1
                for number in range(last_seen + 1, head + 1):
                    block = await self.get_block(number)
                    last_seen = number
                    await self._deliver(on_block, block)
            except ChainError as e:
                logger.warning("Block watch error: %s", e)
                if on_error:
                    on_error(e)
            except Exception as e:
                logger.exception("Unexpected block watch error")
                if on_error:
                    on_error(e)
            await asyncio.sleep(self.poll_interval)

    @staticmethod
    async def _deliver(on_block: BlockCallback, block: Block) -> None:
        # A failing subscriber skips this block; polling continues.
        try:
            result = on_block(block)
            if asyncio.iscoroutine(result):
                await result
        except Exception:
            logger.exception("Block callback failed for block %s", block.number)

    async def aclose(self) -> None:
        await self._client.aclose()


# ── Factory ───────────────────────────────────────────────────────────────────


def get_chain_client(
    rpc_url: Optional[str] = None, timeout: float = 15.0, poll_interval: float = 2.0
) -> ChainClient:
    return SomniaChainClient(
        rpc_url=rpc_url or SOMNIA_TESTNET["rpc_url"],
        timeout=timeout,
        poll_interval=poll_interval,
    )

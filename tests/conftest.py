"""
Shared fakes: an in-memory chain client and a scripted LLM.

No test touches the network.
"""
from typing import Optional

import pytest

from chain_providers import ChainClient
from exceptions import ChainError, LLMError
from models import Block, ChainTransaction

WALLET = "0x1234567890abcdef1234567890ABCDEF12345678"
OTHER = "0x9999999999999999999999999999999999999999"


class FakeChainClient(ChainClient):
    """Records every read in `calls`; `fail=True` makes every read raise ChainError."""

    def __init__(
        self,
        balance: int = 0,
        tx_count: int = 0,
        head: int = 1000,
        blocks: Optional[dict[int, Block]] = None,
        bytecode: Optional[str] = None,
        fail: bool = False,
    ):
        self.balance = balance
        self.tx_count = tx_count
        self.head = head
        self.blocks = blocks or {}
        self.bytecode = bytecode
        self.fail = fail
        self.calls: list[tuple] = []
        self.subscribers: list = []
        self.delivered = 0

    def _record(self, *call):
        self.calls.append(call)
        if self.fail:
            raise ChainError(f"{call[0]} unreachable", call[0])

    async def get_balance(self, address: str) -> int:
        self._record("get_balance", address)
        return self.balance

    async def get_transaction_count(self, address: str) -> int:
        self._record("get_transaction_count", address)
        return self.tx_count

    async def get_block_number(self) -> int:
        self._record("get_block_number")
        return self.head

    async def get_block(self, number: int, include_transactions: bool = False) -> Block:
        self._record("get_block", number, include_transactions)
        if number in self.blocks:
            return self.blocks[number]
        return Block(number=number, hash=f"0x{number:064x}", timestamp=1_700_000_000 + number)

    async def get_bytecode(self, address: str) -> Optional[str]:
        self._record("get_bytecode", address)
        return self.bytecode

    def watch_blocks(self, on_block, on_error=None):
        self.subscribers.append(on_block)

        def unwatch():
            if on_block in self.subscribers:
                self.subscribers.remove(on_block)

        return unwatch

    def emit(self, block: Block) -> None:
        for callback in list(self.subscribers):
            callback(block)
            self.delivered += 1

    @property
    def block_reads(self) -> list[tuple]:
        return [c for c in self.calls if c[0] == "get_block"]


class FakeLLM:
    """Stands in for LLMClient: returns `reply` or raises LLMError when `reply` is an exception."""

    def __init__(self, reply="", replies: Optional[list] = None):
        self.replies = list(replies) if replies is not None else None
        self.reply = reply
        self.prompts: list[tuple[str, str]] = []

    async def complete(self, system_prompt, user_prompt, **kwargs) -> str:
        self.prompts.append((system_prompt, user_prompt))
        reply = self.replies.pop(0) if self.replies else self.reply
        if isinstance(reply, Exception):
            raise reply
        return reply


def tx(hash_: str, sender: str, recipient: Optional[str], value: int = 0) -> ChainTransaction:
    return ChainTransaction(hash=hash_, from_address=sender, to_address=recipient, value=value)


@pytest.fixture
def chain():
    return FakeChainClient()


@pytest.fixture
def failing_llm():
    return FakeLLM(LLMError("provider down"))

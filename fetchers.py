"""
Read-only wallet and block fetchers, one per query intent.

Each fetcher takes the chain client explicitly so the resolver can run
against any `ChainClient` (including fakes in tests).
"""
import asyncio
import logging
from typing import Optional

from chain_providers import ChainClient
from models import (
    DEFAULT_LIMIT,
    BlockDetails,
    ChainTransaction,
    ContractInfo,
    NFTData,
    TokenData,
    WalletSnapshot,
)

logger = logging.getLogger(__name__)

# Upper bound for the recent-activity walk. Without an indexer this is a
# bounded heuristic over the newest blocks, not a complete history.
MAX_SCAN_BLOCKS = 100
SCAN_BATCH_SIZE = 10


async def get_wallet_data(client: ChainClient, address: str) -> WalletSnapshot:
    """Balance and nonce, fetched concurrently. Either failure fails the call."""
    balance, tx_count = await asyncio.gather(
        client.get_balance(address),
        client.get_transaction_count(address),
    )
    return WalletSnapshot(
        address=address, balance=balance, transaction_count=tx_count
    )


async def get_recent_transactions(
    client: ChainClient,
    address: str,
    limit: int = DEFAULT_LIMIT,
    head: Optional[int] = None,
) -> list[ChainTransaction]:
    """
    Walk backwards from the head, newest first, collecting transactions sent
    from or to `address` until `limit` matches or MAX_SCAN_BLOCKS blocks.

    `head` is the block to start from; when omitted the current head is read.

    Returns whatever was found; an empty list if nothing matched or the scan
    failed part-way.
    """
    limit = max(1, limit)
    target = address.lower()
    matches: list[ChainTransaction] = []

    try:
        if head is None:
            head = await client.get_block_number()
        numbers = [n for n in range(head, head - MAX_SCAN_BLOCKS, -1) if n >= 0]

        for start in range(0, len(numbers), SCAN_BATCH_SIZE):
            batch = numbers[start:start + SCAN_BATCH_SIZE]
            blocks = await asyncio.gather(
                *(client.get_block(n, include_transactions=True) for n in batch)
            )
            for block in blocks:
                for tx in block.transactions:
                    if not isinstance(tx, ChainTransaction):
                        continue
                    if (tx.from_address or "").lower() == target or (
                        tx.to_address or ""
                    ).lower() == target:
                        matches.append(tx)
                if len(matches) >= limit:
                    return matches[:limit]
    except Exception:
        logger.exception("Recent transaction scan failed for %s", address)
        return []

    return matches[:limit]


async def get_nft_balance(client: ChainClient, address: str) -> NFTData:
    # No NFT indexer behind the chain client yet.
    return NFTData()


async def get_token_balances(client: ChainClient, address: str) -> TokenData:
    # No token indexer behind the chain client yet.
    return TokenData()


async def get_contract_info(client: ChainClient, address: str) -> ContractInfo:
    try:
        code = await client.get_bytecode(address)
    except Exception as e:
        logger.warning("Contract lookup failed for %s: %s", address, e)
        return ContractInfo(address=address, is_contract=False)

    return ContractInfo(
        address=address,
        is_contract=bool(code) and code != "0x",
        bytecode=code,
    )


async def get_block_details(client: ChainClient, block_number: int) -> BlockDetails:
    """Header-level fields only. Errors propagate: a missing block is infra, not user data."""
    block = await client.get_block(block_number, include_transactions=False)
    return BlockDetails(
        number=str(block.number),
        hash=block.hash,
        timestamp=str(block.timestamp),
        transaction_count=len(block.transactions),
        gas_used=None if block.gas_used is None else str(block.gas_used),
        gas_limit=None if block.gas_limit is None else str(block.gas_limit),
    )

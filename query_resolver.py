import logging
from typing import Any, Awaitable, Callable, Iterable, Optional

import fetchers
from chain_providers import ChainClient
from intent_parser import IntentParser
from models import (
    BalanceData,
    Intent,
    ParsedQuery,
    ProofEnvelope,
    QueryResult,
    TransactionsData,
)
from prompts import CONNECTION_ERROR_REPLY, INVALID_ADDRESS_REPLY
from storage import NullStore
from synthesizer import ResponseSynthesizer
from utils import format_native, is_valid_address, short_address, to_whole_units

logger = logging.getLogger(__name__)

Fetch = Callable[[str, ParsedQuery, int], Awaitable[dict[str, Any]]]


def _dump(model) -> dict[str, Any]:
    return model.model_dump(by_alias=True, mode="json")


class QueryResolver:
    """
    One pass per request:

        validate address → parse intent → [general knowledge → unverified answer]
        → latest block → fetch by intent → synthesize → verified answer + proof

    The block height is read once and reused for the fetch and the proof. It
    is an "as-of" marker and may trail the height the data was actually read
    at if blocks are produced mid-request.
    """

    def __init__(
        self,
        client: ChainClient,
        parser: IntentParser,
        synthesizer: ResponseSynthesizer,
        store: Optional[NullStore] = None,
    ):
        self.client = client
        self.parser = parser
        self.synthesizer = synthesizer
        self.store = store or NullStore()
        self._dispatch: dict[Intent, Fetch] = {
            Intent.BALANCE: self._fetch_balance,
            Intent.TRANSACTIONS: self._fetch_transactions,
            Intent.NFTS: self._fetch_nfts,
            Intent.TOKENS: self._fetch_tokens,
            Intent.CONTRACTS: self._fetch_contract,
            Intent.BLOCKS: self._fetch_block,
        }

    async def resolve(
        self,
        query: str,
        wallet_address: str,
        filters: Optional[Iterable[str]] = None,
    ) -> QueryResult:
        if not is_valid_address(wallet_address):
            logger.info("Invalid wallet address: %r", wallet_address)
            return QueryResult(
                summary=INVALID_ADDRESS_REPLY, verified=False, status_code=400
            )

        try:
            result = await self._resolve(query or "", wallet_address, filters)
        except Exception:
            logger.exception("Query failed for %s", short_address(wallet_address))
            return QueryResult(
                summary=CONNECTION_ERROR_REPLY, verified=False, status_code=500
            )

        await self._persist(query or "", wallet_address, result)
        return result

    async def _resolve(
        self, query: str, wallet_address: str, filters: Optional[Iterable[str]]
    ) -> QueryResult:
        parsed = await self.parser.parse(query)
        if filters:
            merged = list(dict.fromkeys([*parsed.filters, *filters]))
            parsed = parsed.model_copy(update={"filters": merged})

        logger.info(
            "Received query: intent=%s wallet=%s",
            parsed.intent.value, short_address(wallet_address),
        )

        if parsed.intent == Intent.GENERAL_KNOWLEDGE:
            summary = await self.synthesizer.general_response(query)
            return QueryResult(
                summary=summary,
                verified=False,
                glinda_glorified=True,
                parsed_query=parsed,
            )

        latest_block = await self.client.get_block_number()

        fetch = self._dispatch.get(parsed.intent, self._fetch_overview)
        raw_data = await fetch(wallet_address, parsed, latest_block)
        intent = parsed.intent if parsed.intent in self._dispatch else Intent.OVERVIEW

        summary = await self.synthesizer.synthesize(
            raw_data, intent, wallet_address, query
        )

        return QueryResult(
            summary=summary,
            verified=True,
            proof=ProofEnvelope(block_number=latest_block, raw_data=raw_data),
            parsed_query=parsed,
        )

    # ── Fetch by Intent ───────────────────────────────────────────────────

    async def _wallet_data(self, address: str) -> BalanceData:
        snapshot = await fetchers.get_wallet_data(self.client, address)
        return BalanceData(
            address=snapshot.address,
            balance=snapshot.balance,
            transaction_count=snapshot.transaction_count,
            balance_formatted=format_native(snapshot.balance),
            wallet_short=short_address(address),
            has_balance=to_whole_units(snapshot.balance) > 0,
            has_transactions=snapshot.transaction_count > 0,
        )

    async def _fetch_balance(self, address, parsed, latest_block):
        return _dump(await self._wallet_data(address))

    async def _fetch_overview(self, address, parsed, latest_block):
        return _dump(await self._wallet_data(address))

    async def _fetch_transactions(self, address, parsed, latest_block):
        txs = await fetchers.get_recent_transactions(
            self.client, address, parsed.limit, head=latest_block
        )
        return _dump(TransactionsData(
            transactions=txs,
            count=len(txs),
            has_transactions=bool(txs),
            wallet_short=short_address(address),
            latest_tx=txs[0].hash if txs else None,
        ))

    async def _fetch_nfts(self, address, parsed, latest_block):
        return _dump(await fetchers.get_nft_balance(self.client, address))

    async def _fetch_tokens(self, address, parsed, latest_block):
        return _dump(await fetchers.get_token_balances(self.client, address))

    async def _fetch_contract(self, address, parsed, latest_block):
        target = next((e for e in parsed.entities if is_valid_address(e)), address)
        return _dump(await fetchers.get_contract_info(self.client, target))

    async def _fetch_block(self, address, parsed, latest_block):
        return _dump(await fetchers.get_block_details(self.client, latest_block))

    # ── Persistence (write-only; failures never reach the caller) ─────────

    async def _persist(self, query: str, wallet_address: str, result: QueryResult) -> None:
        if not self.store.enabled:
            return
        response = result.model_dump(by_alias=True, mode="json", exclude_none=True)
        try:
            await self.store.log_query(
                wallet=wallet_address,
                question=query,
                parsed_query=response.get("parsedQuery"),
                answer=result.summary,
                proof=response.get("proof"),
                raw_json=(response.get("proof") or {}).get("rawData"),
            )
            await self.store.save_query_history(wallet_address, query, response)
        except Exception as e:
            logger.warning("Failed to log query: %s", e)

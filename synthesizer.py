import json
import logging
from typing import Any, Iterable, Optional

import knowledge
from agent import LLMClient
from exceptions import LLMError
from models import Intent
from prompts import SUMMARY_SYSTEM_PROMPT, SUMMARY_USER_PROMPT
from utils import plural

logger = logging.getLogger(__name__)

DEFAULT_FAILURE_MARKERS = ("developer", "missing")


class ResponseSynthesizer:
    """
    Narrates fetched chain data for the user.

    With an LLM configured, the exact raw data is embedded in the prompt and
    the reply is accepted unless it contains one of `failure_markers`.
    Otherwise, or on any LLM failure, a per-intent template is used.
    `synthesize` never raises.
    """

    def __init__(
        self,
        llm: Optional[LLMClient] = None,
        failure_markers: Iterable[str] = DEFAULT_FAILURE_MARKERS,
    ):
        self.llm = llm
        self.failure_markers = [m.lower() for m in failure_markers if m]

    async def synthesize(
        self,
        raw_data: dict[str, Any],
        intent: Intent | str,
        wallet_address: Optional[str] = None,
        original_query: Optional[str] = None,
    ) -> str:
        intent_value = intent.value if isinstance(intent, Intent) else str(intent)

        if self.llm is not None:
            try:
                reply = await self._compose(
                    raw_data, intent_value, wallet_address, original_query
                )
                if self._acceptable(reply):
                    return reply
                logger.warning("LLM summary rejected by failure markers; using template")
            except LLMError as e:
                logger.warning("Summary generation failed: %s", e)

        return render_template(raw_data, intent_value)

    async def general_response(self, query: str) -> str:
        return knowledge.lookup(query or "")

    async def _compose(
        self,
        raw_data: dict[str, Any],
        intent: str,
        wallet_address: Optional[str],
        original_query: Optional[str],
    ) -> str:
        user_prompt = SUMMARY_USER_PROMPT.format(
            query=original_query or "Tell me about my wallet",
            intent=intent,
            wallet_address=wallet_address or "Not provided",
            data=json.dumps(raw_data, indent=2, default=str),
        )
        return await self.llm.complete(
            SUMMARY_SYSTEM_PROMPT, user_prompt, temperature=0.95, max_tokens=300
        )

    def _acceptable(self, reply: str) -> bool:
        lowered = reply.lower()
        return not any(marker in lowered for marker in self.failure_markers)


# ── Templates ─────────────────────────────────────────────────────────────────


def render_template(data: dict[str, Any], intent: str) -> str:
    renderer = _TEMPLATES.get(intent)
    if renderer is None:
        return f"Your {intent} data from the Emerald City of Somnia has been retrieved and verified."
    return renderer(data)


def _balance(data: dict) -> str:
    balance = data.get("balanceFormatted") or data.get("balance") or "0 STT"
    tx_count = int(data.get("transactionCount") or 0)
    if tx_count == 0:
        return (
            f"Your wallet in the Emerald City holds {balance} with no adventures "
            "on the yellow brick road yet."
        )
    return (
        f"Your wallet sparkles with {balance} in the Emerald City, with "
        f"{plural(tx_count, 'transaction')} along the yellow brick road."
    )


def _overview(data: dict) -> str:
    balance = data.get("balanceFormatted") or "0 STT"
    tx_count = int(data.get("transactionCount") or 0)
    wallet = data.get("walletShort") or data.get("address") or "your wallet"
    if tx_count == 0:
        return (
            f"The Wizard sees {wallet} holding {balance}, with no steps taken on "
            "the yellow brick road yet."
        )
    return (
        f"The Wizard sees {wallet} holding {balance}, with "
        f"{plural(tx_count, 'transaction')} recorded in the Emerald City."
    )


def _transactions(data: dict) -> str:
    count = int(data.get("count") or len(data.get("transactions") or []))
    if count == 0:
        return (
            "No transactions found on your yellow brick road in the most recent "
            "blocks of the Emerald City."
        )
    return (
        f"You have {plural(count, 'transaction')} dancing through the latest Somnia "
        "blocks, each step verified by the Wizard."
    )


def _nfts(data: dict) -> str:
    if not data.get("indexed", True):
        return (
            "The Wizard has not catalogued NFTs in the Emerald City yet, so your "
            "collectibles are not available to view at this time."
        )
    nft_count = int(data.get("totalNFTs") or 0)
    if nft_count == 0:
        return (
            "No magical collectibles found in your treasure chest at this time, "
            "but every great collection starts somewhere."
        )
    collections = int(data.get("collections") or 0)
    return (
        f"Your collection shines with {plural(nft_count, 'NFT')} across "
        f"{plural(collections, 'collection')}, each as unique as ruby slippers."
    )


def _tokens(data: dict) -> str:
    if not data.get("indexed", True):
        return (
            "Token balances in the Emerald City are not indexed yet, so your vault's "
            "tokens are not available to view at this time."
        )
    token_count = len(data.get("tokens") or [])
    if token_count == 0:
        return "No additional tokens found in your Emerald City vault at this time."
    return (
        f"Your vault holds {plural(token_count, 'different token')}, each shining "
        "with its own magic."
    )


def _blocks(data: dict) -> str:
    number = data.get("number") or data.get("blockNumber") or "unknown"
    tx_in_block = int(data.get("transactionCount") or 0)
    return (
        f"The Wizard reveals block {number} in the Emerald City, containing "
        f"{plural(tx_in_block, 'transaction')}."
    )


def _contracts(data: dict) -> str:
    address = data.get("address") or "This address"
    if data.get("isContract"):
        return (
            f"{address} is a smart contract, its spells inscribed in the Emerald City "
            "for all to call."
        )
    return (
        f"{address} is a regular account, not a smart contract, walking the yellow "
        "brick road on its own."
    )


_TEMPLATES = {
    Intent.BALANCE.value: _balance,
    Intent.OVERVIEW.value: _overview,
    Intent.TRANSACTIONS.value: _transactions,
    Intent.NFTS.value: _nfts,
    Intent.TOKENS.value: _tokens,
    Intent.BLOCKS.value: _blocks,
    Intent.CONTRACTS.value: _contracts,
}

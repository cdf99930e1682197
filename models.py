from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator
from pydantic.alias_generators import to_camel

from utils import iso_now


# ── Enums ─────────────────────────────────────────────────────────────────────


class Intent(str, Enum):
    BALANCE = "balance"
    TRANSACTIONS = "transactions"
    NFTS = "nfts"
    TOKENS = "tokens"
    CONTRACTS = "contracts"
    BLOCKS = "blocks"
    OVERVIEW = "overview"
    GENERAL_KNOWLEDGE = "general_knowledge"


class TimeRange(str, Enum):
    DAY = "24h"
    WEEK = "7d"
    MONTH = "30d"
    ALL = "all"


DEFAULT_LIMIT = 10
MAX_LIMIT = 100


class CamelModel(BaseModel):
    """Snake-case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Parsed Query ──────────────────────────────────────────────────────────────


class ParsedQuery(CamelModel):
    intent: Intent = Intent.OVERVIEW
    entities: list[str] = []
    filters: list[str] = []
    time_range: Optional[TimeRange] = None
    limit: int = DEFAULT_LIMIT

    @field_validator("intent", mode="before")
    @classmethod
    def _coerce_intent(cls, v):
        if isinstance(v, Intent):
            return v
        try:
            return Intent(str(v).strip().lower())
        except ValueError:
            return Intent.OVERVIEW

    @field_validator("time_range", mode="before")
    @classmethod
    def _coerce_time_range(cls, v):
        if v is None or isinstance(v, TimeRange):
            return v
        try:
            return TimeRange(str(v).strip().lower())
        except ValueError:
            return None

    @field_validator("limit", mode="before")
    @classmethod
    def _coerce_limit(cls, v):
        try:
            n = int(v)
        except (TypeError, ValueError):
            return DEFAULT_LIMIT
        if n <= 0:
            return DEFAULT_LIMIT
        return min(n, MAX_LIMIT)

    @field_validator("entities", "filters", mode="before")
    @classmethod
    def _coerce_str_list(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        if not isinstance(v, (list, tuple, set)):
            return []
        return [str(item) for item in v]


# ── Chain Data ────────────────────────────────────────────────────────────────


class ChainTransaction(CamelModel):
    hash: str
    from_address: Optional[str] = Field(None, alias="from")
    to_address: Optional[str] = Field(None, alias="to")
    value: int = 0
    block_number: Optional[int] = None
    nonce: Optional[int] = None
    gas: Optional[int] = None
    gas_price: Optional[int] = None

    @field_serializer("value", "gas", "gas_price")
    def _big_int_as_str(self, v: Optional[int]):
        return None if v is None else str(v)


class Block(CamelModel):
    number: int
    hash: Optional[str] = None
    timestamp: int = 0
    gas_used: Optional[int] = None
    gas_limit: Optional[int] = None
    # Hashes when fetched without bodies, ChainTransaction otherwise.
    transactions: list[Any] = []


class WalletSnapshot(CamelModel):
    address: str
    balance: int
    transaction_count: int

    @field_serializer("balance")
    def _balance_as_str(self, v: int) -> str:
        return str(v)


class BalanceData(WalletSnapshot):
    balance_formatted: str
    wallet_short: str
    has_balance: Optional[bool] = None
    has_transactions: Optional[bool] = None


class TransactionsData(CamelModel):
    transactions: list[ChainTransaction] = []
    count: int = 0
    has_transactions: bool = False
    wallet_short: str
    latest_tx: Optional[str] = None


class NFTData(CamelModel):
    total_nfts: int = Field(0, alias="totalNFTs")
    collections: int = 0
    nfts: list[dict] = []
    indexed: bool = False
    message: str = "NFT indexing coming soon"


class TokenData(CamelModel):
    tokens: list[dict] = []
    indexed: bool = False
    message: str = "Token balance indexing coming soon"


class BlockDetails(CamelModel):
    number: str
    hash: Optional[str] = None
    timestamp: str
    transaction_count: int
    gas_used: Optional[str] = None
    gas_limit: Optional[str] = None


class ContractInfo(CamelModel):
    address: str
    is_contract: bool = False
    bytecode: Optional[str] = None


# ── Response Envelope ─────────────────────────────────────────────────────────


class ProofEnvelope(CamelModel):
    block_number: int
    timestamp: str = Field(default_factory=iso_now)
    raw_data: dict[str, Any]


class QueryResult(CamelModel):
    summary: str
    verified: bool = False
    glinda_glorified: Optional[bool] = None
    proof: Optional[ProofEnvelope] = None
    parsed_query: Optional[ParsedQuery] = None
    # Not serialized; HTTP status the surface should use.
    status_code: int = Field(200, exclude=True)


# ── API Models ────────────────────────────────────────────────────────────────


class HealthResponse(BaseModel):
    status: str
    version: str


class QueryRequest(CamelModel):
    query: str = Field("", description="Natural-language question")
    wallet_address: str = Field("", description="0x-prefixed 20-byte hex address")
    filters: list[str] = Field([], description="Category tags selected in the UI")

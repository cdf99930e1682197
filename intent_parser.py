"""
Natural-language query → ParsedQuery.

Two strategies share one interface: an LLM-backed parser and a deterministic
keyword parser. The LLM parser falls back to the keyword parser on any
failure, so `parse` never raises.
"""
import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Callable, NamedTuple, Optional

from agent import LLMClient
from exceptions import LLMError
from models import DEFAULT_LIMIT, Intent, ParsedQuery, TimeRange
from prompts import PARSER_SYSTEM_PROMPT
from utils import ADDRESS_IN_TEXT_RE

logger = logging.getLogger(__name__)


def _re(pattern: str) -> re.Pattern:
    return re.compile(pattern, re.IGNORECASE)


# ── Phrasing Patterns ─────────────────────────────────────────────────────────

CONCEPT_QUESTION = _re(
    r"what is|tell me about|explain|how does|how do|what are|define|describe"
)
OPEN_QUESTION = _re(r"\b(why|when|where)\b")
FIRST_PERSON = _re(r"\bmy\b|\bi have\b|\bshow\b|\bget\b")
EXPLANATION = _re(r"what is|explain")

BALANCE = _re(r"balance|how much|worth|value")
NFT = _re(r"nft|collectible|token id|erc-?721|erc-?1155")
TOKEN = _re(r"token|erc-?20|holdings|asset")
TRANSACTION = _re(r"transaction|\btxs?\b|transfer|sent|received|activity")
CONTRACT = _re(r"contract|deploy|interact|\bcall")
BLOCK = _re(r"block|timestamp|\bwhen\b|\bdate\b")

TIME_RANGES: list[tuple[re.Pattern, TimeRange]] = [
    (_re(r"today|24 ?hours?|last day"), TimeRange.DAY),
    (_re(r"week|7 ?days?"), TimeRange.WEEK),
    (_re(r"month|30 ?days?"), TimeRange.MONTH),
    (_re(r"\ball time\b|\bever\b"), TimeRange.ALL),
]
LIMIT = _re(r"(\d+)\s*(transaction|\btxs?\b|nft|token)")
TICKER = re.compile(r"\b(STT|ETH|WETH|USDC|USDT|DAI|WBTC)\b", re.IGNORECASE)


class Rule(NamedTuple):
    name: str
    matches: Callable[[str], bool]
    intent: Intent


# Evaluated top to bottom; the first match wins.
INTENT_RULES: list[Rule] = [
    Rule(
        "concept question",
        lambda q: bool(CONCEPT_QUESTION.search(q)),
        Intent.GENERAL_KNOWLEDGE,
    ),
    Rule(
        "open question without wallet context",
        lambda q: bool(OPEN_QUESTION.search(q)) and not FIRST_PERSON.search(q),
        Intent.GENERAL_KNOWLEDGE,
    ),
    Rule(
        "balance",
        lambda q: bool(BALANCE.search(q)) and not NFT.search(q),
        Intent.BALANCE,
    ),
    Rule(
        "nfts",
        lambda q: bool(NFT.search(q)) and not EXPLANATION.search(q),
        Intent.NFTS,
    ),
    Rule(
        "tokens",
        lambda q: bool(TOKEN.search(q)) and not EXPLANATION.search(q),
        Intent.TOKENS,
    ),
    Rule(
        "transactions",
        lambda q: bool(TRANSACTION.search(q)),
        Intent.TRANSACTIONS,
    ),
    Rule(
        "contracts",
        lambda q: bool(CONTRACT.search(q)),
        Intent.CONTRACTS,
    ),
    Rule(
        "blocks",
        lambda q: bool(BLOCK.search(q)) and not EXPLANATION.search(q),
        Intent.BLOCKS,
    ),
]


def classify_intent(query: str) -> Intent:
    for rule in INTENT_RULES:
        if rule.matches(query):
            return rule.intent
    return Intent.OVERVIEW


def extract_time_range(query: str) -> Optional[TimeRange]:
    for pattern, time_range in TIME_RANGES:
        if pattern.search(query):
            return time_range
    return None


def extract_limit(query: str) -> int:
    m = LIMIT.search(query)
    return int(m.group(1)) if m else DEFAULT_LIMIT


def extract_entities(query: str) -> list[str]:
    entities = ADDRESS_IN_TEXT_RE.findall(query)
    for ticker in TICKER.findall(query):
        if ticker.upper() not in entities:
            entities.append(ticker.upper())
    return entities


# ── Strategies ────────────────────────────────────────────────────────────────


class IntentParser(ABC):
    @abstractmethod
    async def parse(self, query: str) -> ParsedQuery:
        ...


class KeywordIntentParser(IntentParser):
    """Deterministic parser. Complete on its own; also the LLM parser's fallback."""

    def parse_sync(self, query: str) -> ParsedQuery:
        query = query or ""
        intent = classify_intent(query)
        if intent == Intent.GENERAL_KNOWLEDGE:
            return ParsedQuery(intent=intent)
        return ParsedQuery(
            intent=intent,
            entities=extract_entities(query),
            time_range=extract_time_range(query),
            limit=extract_limit(query),
        )

    async def parse(self, query: str) -> ParsedQuery:
        return self.parse_sync(query)


class LLMIntentParser(IntentParser):
    def __init__(self, llm: LLMClient, fallback: Optional[KeywordIntentParser] = None):
        self.llm = llm
        self.fallback = fallback or KeywordIntentParser()

    async def parse(self, query: str) -> ParsedQuery:
        try:
            text = await self.llm.complete(
                PARSER_SYSTEM_PROMPT, query or "", temperature=0.3, json_mode=True
            )
            return self._decode(text)
        except (LLMError, ValueError, TypeError) as e:
            logger.warning("LLM parsing failed, using fallback: %s", e)
        return self.fallback.parse_sync(query)

    @staticmethod
    def _decode(text: str) -> ParsedQuery:
        parsed = json.loads(_strip_code_fence(text))
        if not isinstance(parsed, dict):
            raise ValueError("parser reply is not a JSON object")
        for key in ("entities", "filters"):
            value = parsed.get(key)
            if value is not None and not isinstance(value, (list, str)):
                raise ValueError(f"parser reply has a malformed {key!r} field")
        return ParsedQuery(
            intent=parsed.get("intent") or Intent.OVERVIEW,
            entities=parsed.get("entities") or [],
            filters=parsed.get("filters") or [],
            time_range=parsed.get("timeRange") or parsed.get("time_range"),
            limit=parsed.get("limit") or DEFAULT_LIMIT,
        )


def _strip_code_fence(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        text = text.strip("`")
        if text.lower().startswith("json"):
            text = text[4:]
    return text.strip()


def build_intent_parser(llm: Optional[LLMClient]) -> IntentParser:
    if llm is None:
        return KeywordIntentParser()
    return LLMIntentParser(llm)

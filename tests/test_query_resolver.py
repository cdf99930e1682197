import asyncio

import pytest

from conftest import OTHER, WALLET, FakeChainClient, FakeLLM, tx
from intent_parser import KeywordIntentParser, LLMIntentParser
from models import Block, Intent
from prompts import CONNECTION_ERROR_REPLY, INVALID_ADDRESS_REPLY
from query_resolver import QueryResolver
from storage import NullStore, QueryStore
from synthesizer import ResponseSynthesizer


class RecordingSynthesizer(ResponseSynthesizer):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.seen: list[tuple[dict, Intent]] = []

    async def synthesize(self, raw_data, intent, wallet_address=None, original_query=None):
        self.seen.append((raw_data, intent))
        return await super().synthesize(raw_data, intent, wallet_address, original_query)


class BrokenStore(NullStore):
    enabled = True

    async def log_query(self, **entry):
        raise RuntimeError("disk full")


def make_resolver(client=None, llm=None, store=None):
    synth = RecordingSynthesizer(llm)
    parser = LLMIntentParser(llm) if llm else KeywordIntentParser()
    resolver = QueryResolver(client or FakeChainClient(), parser, synth, store)
    return resolver, synth


def resolve(resolver, query, wallet=WALLET, filters=None):
    return asyncio.run(resolver.resolve(query, wallet, filters))


@pytest.mark.parametrize("wallet", ["", "0x123", "not-an-address", None, WALLET + "\n"])
def test_invalid_address_is_rejected_without_chain_reads(wallet):
    client = FakeChainClient()
    resolver, synth = make_resolver(client)
    result = resolve(resolver, "what's my balance", wallet)

    assert result.verified is False
    assert result.status_code == 400
    assert result.summary == INVALID_ADDRESS_REPLY
    assert result.proof is None
    assert client.calls == []
    assert synth.seen == []


def test_general_knowledge_never_touches_the_chain():
    client = FakeChainClient()
    resolver, synth = make_resolver(client)
    result = resolve(resolver, "what is an NFT")

    assert result.verified is False
    assert result.glinda_glorified is True
    assert result.proof is None
    assert result.parsed_query.intent == Intent.GENERAL_KNOWLEDGE
    assert "Non-Fungible" in result.summary
    assert client.calls == []
    assert synth.seen == []


def test_zero_balance_wallet():
    client = FakeChainClient(balance=0, tx_count=0, head=238800679)
    resolver, _ = make_resolver(client)
    result = resolve(resolver, "what's my balance")

    assert result.verified is True
    assert result.status_code == 200
    assert "0 STT" in result.summary
    raw = result.proof.raw_data
    assert raw["balance"] == "0"
    assert raw["hasBalance"] is False
    assert raw["hasTransactions"] is False
    assert result.proof.block_number == 238800679


def test_balance_answer_wire_shape():
    client = FakeChainClient(balance=5_200_000_000_000_000_000, tx_count=12)
    resolver, _ = make_resolver(client)
    body = resolve(resolver, "what's my balance").model_dump(
        by_alias=True, mode="json", exclude_none=True
    )

    assert body["verified"] is True
    assert "statusCode" not in body and "status_code" not in body
    assert body["parsedQuery"]["intent"] == "balance"
    assert body["proof"]["rawData"] == {
        "address": WALLET,
        "balance": "5200000000000000000",
        "transactionCount": 12,
        "balanceFormatted": "5 STT",
        "walletShort": "0x1234...5678",
        "hasBalance": True,
        "hasTransactions": True,
    }
    assert body["proof"]["timestamp"].endswith("Z")


def test_proof_carries_exactly_what_was_narrated():
    resolver, synth = make_resolver(FakeChainClient(balance=10**18, tx_count=1))
    result = resolve(resolver, "what's my balance")

    assert len(synth.seen) == 1
    narrated, intent = synth.seen[0]
    assert intent == Intent.BALANCE
    assert result.proof.raw_data == narrated


@pytest.mark.parametrize("query", ["latest block please", "show my recent transactions"])
def test_block_height_is_read_once_per_request(query):
    client = FakeChainClient(head=777)
    resolver, _ = make_resolver(client)
    result = resolve(resolver, query)

    assert [c for c in client.calls if c[0] == "get_block_number"] == [("get_block_number",)]
    assert result.proof.block_number == 777
    assert max(c[1] for c in client.block_reads) == 777


def test_block_intent_reads_header_at_proof_height():
    client = FakeChainClient(head=777)
    resolver, _ = make_resolver(client)
    result = resolve(resolver, "latest block please")

    assert client.block_reads == [("get_block", 777, False)]
    assert result.proof.raw_data["number"] == "777"


def test_transactions_intent_uses_parsed_limit():
    blocks = {
        n: Block(number=n, transactions=[tx(f"0x{n:x}", WALLET, OTHER)])
        for n in range(1000, 990, -1)
    }
    resolver, _ = make_resolver(FakeChainClient(blocks=blocks))
    result = resolve(resolver, "show my last 3 transactions")

    raw = result.proof.raw_data
    assert raw["count"] == 3
    assert raw["hasTransactions"] is True
    assert raw["latestTx"] == "0x3e8"
    assert [t["hash"] for t in raw["transactions"]] == ["0x3e8", "0x3e7", "0x3e6"]


def test_nft_intent_reports_not_indexed():
    resolver, _ = make_resolver()
    result = resolve(resolver, "show my NFT balance")

    assert result.parsed_query.intent == Intent.NFTS
    assert result.proof.raw_data["indexed"] is False
    assert result.proof.raw_data["totalNFTs"] == 0
    assert "not available" in result.summary


def test_contract_intent_checks_the_mentioned_address():
    client = FakeChainClient(bytecode="0x6080")
    resolver, _ = make_resolver(client)
    result = resolve(resolver, f"check if {OTHER} is a contract")

    assert ("get_bytecode", OTHER) in client.calls
    assert result.proof.raw_data["isContract"] is True


def test_contract_intent_defaults_to_wallet():
    client = FakeChainClient()
    resolver, _ = make_resolver(client)
    resolve(resolver, "did I deploy anything")
    assert ("get_bytecode", WALLET) in client.calls


def test_unmatched_query_falls_back_to_overview():
    resolver, synth = make_resolver(FakeChainClient(balance=0, tx_count=2))
    result = resolve(resolver, "hello wizard")

    assert result.parsed_query.intent == Intent.OVERVIEW
    assert synth.seen[0][1] == Intent.OVERVIEW
    assert "2 transactions" in result.summary


def test_request_filters_are_merged_into_parsed_query():
    resolver, _ = make_resolver()
    result = resolve(resolver, "show my transactions", filters=["tx", "wallet", "tx"])
    assert result.parsed_query.filters == ["tx", "wallet"]


def test_transport_failure_returns_generic_error():
    resolver, _ = make_resolver(FakeChainClient(fail=True))
    result = resolve(resolver, "what's my balance")

    assert result.verified is False
    assert result.status_code == 500
    assert result.summary == CONNECTION_ERROR_REPLY
    assert "unreachable" not in result.summary


def test_llm_summary_is_used_when_configured():
    llm = FakeLLM(replies=[
        '{"intent": "balance"}',
        "Your wallet sparkles with 1 STT in the Emerald City.",
    ])
    resolver, _ = make_resolver(FakeChainClient(balance=10**18), llm=llm)
    result = resolve(resolver, "how rich am I")

    assert result.parsed_query.intent == Intent.BALANCE
    assert result.summary == "Your wallet sparkles with 1 STT in the Emerald City."


def test_failing_llm_still_answers_from_templates(failing_llm):
    resolver, _ = make_resolver(FakeChainClient(balance=0), llm=failing_llm)
    result = resolve(resolver, "what's my balance")

    assert result.verified is True
    assert "0 STT" in result.summary


def test_successful_queries_are_persisted():
    store = QueryStore("sqlite://")
    resolver, _ = make_resolver(store=store)
    resolve(resolver, "what's my balance")
    resolve(resolver, "what is an NFT")

    history = asyncio.run(store.get_query_history(WALLET))
    assert [h["query"] for h in history] == ["what is an NFT", "what's my balance"]
    assert history[1]["response"]["proof"]["rawData"]["address"] == WALLET
    store.close()


def test_rejected_queries_are_not_persisted():
    store = QueryStore("sqlite://")
    resolver, _ = make_resolver(store=store)
    resolve(resolver, "what's my balance", wallet="0x123")
    assert asyncio.run(store.get_query_history("0x123")) == []
    store.close()


def test_persistence_failure_does_not_reach_the_caller():
    resolver, _ = make_resolver(store=BrokenStore())
    result = resolve(resolver, "what's my balance")
    assert result.verified is True
    assert result.status_code == 200

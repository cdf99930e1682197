import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from fastmcp import FastMCP

from agent import LLMClient, build_llm_client
from chain_providers import SOMNIA_TESTNET, ChainClient, get_chain_client
from config import Settings
from fetchers import get_wallet_data
from intent_parser import build_intent_parser
from models import HealthResponse, QueryRequest
from notifier import BlockStreamNotifier
from query_resolver import QueryResolver
from storage import NullStore, build_store
from synthesizer import ResponseSynthesizer
from utils import format_native, iso_now, is_valid_address

VERSION = "1.0.0"
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    chain_client: Optional[ChainClient] = None,
    llm: Optional[LLMClient] = None,
    store: Optional[NullStore] = None,
) -> FastAPI:
    """
    Build the service. Collaborators not passed in are constructed once from
    `settings` when the app starts and shared by every request.
    """
    settings = settings or Settings.from_env()

    # ── MCP Server (mounted at /mcp) ──────────────────────────────────────

    mcp = FastMCP(
        name="Somnia Wallet Oracle",
        instructions=(
            "Answers natural-language questions about a Somnia testnet wallet. "
            "Provide the question and a 0x wallet address; chain-backed answers "
            "carry a proof with the block number and the raw data used."
        ),
    )

    @mcp.tool()
    async def ask_wallet(query: str, wallet_address: str) -> dict:
        """
        Ask a question about a wallet on the Somnia testnet.

        Args:
            query:          Natural-language question, e.g. "what's my balance".
            wallet_address: 0x-prefixed 40 hex digit address.

        Returns:
            The answer envelope: summary, verified flag, proof and parsed query.
        """
        result = await app.state.resolver.resolve(query, wallet_address)
        return result.model_dump(by_alias=True, mode="json", exclude_none=True)

    # ── Lifespan ──────────────────────────────────────────────────────────

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        client = chain_client or get_chain_client(
            settings.rpc_url, settings.rpc_timeout, settings.block_poll_interval
        )
        ai = llm if llm is not None else build_llm_client(
            settings.ai_provider, settings.llm_timeout
        )
        db = store if store is not None else build_store(settings.database_url)

        app.state.settings = settings
        app.state.chain_client = client
        app.state.store = db
        app.state.resolver = QueryResolver(
            client=client,
            parser=build_intent_parser(ai),
            synthesizer=ResponseSynthesizer(ai, settings.summary_failure_markers),
            store=db,
        )
        app.state.notifier = BlockStreamNotifier(client, settings.stream_ping_interval)
        logger.info(
            "Wallet oracle ready (rpc=%s, llm=%s, persistence=%s)",
            settings.rpc_url, "on" if ai else "off", "on" if db.enabled else "off",
        )
        yield
        logger.info("Shutting down.")
        await client.aclose()
        db.close()

    # ── App ───────────────────────────────────────────────────────────────

    app = FastAPI(
        title="Somnia Wallet Oracle",
        description=(
            "Natural-language questions about a Somnia testnet wallet, answered from "
            "live chain reads. Chain-backed answers include a proof envelope with the "
            "block number, server timestamp, and the exact raw data narrated.\n\n"
            "Exposes **REST** (`/api/query`), a block **event stream** (`/api/stream`), "
            "and **MCP** (`/mcp`)."
        ),
        version=VERSION,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.mount("/mcp", mcp.http_app())

    # ── Info ──────────────────────────────────────────────────────────────

    @app.get("/", tags=["Info"])
    def root(request: Request):
        base = str(request.base_url).rstrip("/")
        return {
            "name": "Somnia Wallet Oracle",
            "version": VERSION,
            "chain": SOMNIA_TESTNET["name"],
            "endpoints": {
                "docs": f"{base}/docs",
                "health": f"{base}/health",
                "query": f"{base}/api/query",
                "stream": f"{base}/api/stream",
                "wallet": f"{base}/api/wallet",
                "chain_status": f"{base}/api/chain/status",
                "history": f"{base}/api/history",
                "mcp": f"{base}/mcp",
            },
        }

    @app.get("/health", response_model=HealthResponse, tags=["Info"])
    def health():
        return HealthResponse(status="ok", version=VERSION)

    # ── Core: Query ───────────────────────────────────────────────────────

    @app.post("/api/query", tags=["Oracle"])
    async def query_wallet(req: QueryRequest, request: Request):
        """
        Answer a natural-language question about a wallet.

        - **400** with `verified: false` for a malformed wallet address
        - **200** with `verified: true` and a `proof` for chain-backed answers
        - **200** with `glindaGlorified: true` for general-knowledge answers
        - **500** with a generic message when the chain cannot be reached
        """
        result = await request.app.state.resolver.resolve(
            req.query, req.wallet_address, req.filters
        )
        return JSONResponse(
            status_code=result.status_code,
            content=result.model_dump(by_alias=True, mode="json", exclude_none=True),
        )

    # ── Stream ────────────────────────────────────────────────────────────

    @app.get("/api/stream", tags=["Oracle"])
    async def stream(request: Request):
        """Server-sent events: `stream_init`, then `new_block` per block and `ping` every 30s."""
        notifier: BlockStreamNotifier = request.app.state.notifier
        return StreamingResponse(
            notifier.sse(),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "X-Accel-Buffering": "no",
            },
        )

    # ── Wallet Snapshot ───────────────────────────────────────────────────

    @app.get("/api/wallet", tags=["Chain"])
    async def wallet_snapshot(
        request: Request,
        address: str = Query("", description="0x wallet address"),
        cached: bool = Query(False, description="Serve an unexpired cached snapshot if one exists"),
    ):
        """
        Raw balance and nonce at the current head. Every live snapshot is
        written to the cache; `cached=true` returns an unexpired entry instead
        of reading the chain. Cached snapshots are advisory and never feed
        `/api/query` answers.
        """
        if not is_valid_address(address):
            return JSONResponse(status_code=400, content={"error": "Invalid address"})

        state = request.app.state
        cache_key = f"wallet:{address.lower()}"
        if cached:
            snapshot = await state.store.get_cached_data(cache_key)
            if snapshot is not None:
                return snapshot

        try:
            wallet, block_number = await asyncio.gather(
                get_wallet_data(state.chain_client, address),
                state.chain_client.get_block_number(),
            )
        except Exception as e:
            logger.error("Wallet snapshot failed for %s: %s", address, e)
            return JSONResponse(
                status_code=500,
                content={
                    "error": "Failed to fetch Somnia data",
                    "message": "The chain could not be reached.",
                },
            )

        snapshot = {
            "address": wallet.address,
            "balance": str(wallet.balance),
            "balanceFormatted": format_native(wallet.balance),
            "transactionCount": wallet.transaction_count,
            "blockNumber": str(block_number),
            "timestamp": iso_now(),
        }
        await state.store.cache_blockchain_data(
            cache_key, snapshot, state.settings.cache_ttl
        )
        return snapshot

    @app.get("/api/chain/status", tags=["Chain"])
    async def chain_status(request: Request):
        client = request.app.state.chain_client
        try:
            block_number = await client.get_block_number()
            probe = await get_wallet_data(client, ZERO_ADDRESS)
        except Exception as e:
            logger.error("Chain status check failed: %s", e)
            return JSONResponse(
                status_code=500,
                content={"success": False, "error": "Somnia connection failed"},
            )

        return {
            "success": True,
            "message": "Somnia connection successful",
            "chain": {
                "id": request.app.state.settings.chain_id,
                "name": SOMNIA_TESTNET["name"],
                "rpcUrl": request.app.state.settings.rpc_url,
            },
            "latestBlock": str(block_number),
            "testWallet": {
                "address": ZERO_ADDRESS,
                "balance": str(probe.balance),
                "txCount": probe.transaction_count,
            },
        }

    # ── History ───────────────────────────────────────────────────────────

    @app.get("/api/history", tags=["Oracle"])
    async def query_history(
        request: Request,
        address: str = Query("", description="0x wallet address"),
        limit: int = Query(10, ge=1, le=100),
    ):
        if not is_valid_address(address):
            return JSONResponse(status_code=400, content={"error": "Invalid address"})

        store: NullStore = request.app.state.store
        history = await store.get_query_history(address, limit)
        return {
            "address": address,
            "persistence": store.enabled,
            "history": [
                {**entry, "timestamp": entry["timestamp"].isoformat()}
                for entry in history
            ],
        }

    return app


_settings = Settings.from_env()
logging.basicConfig(
    level=_settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = create_app(_settings)


# ── Entry point ───────────────────────────────────────────────────────────────

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=_settings.host,
        port=_settings.port,
        reload=_settings.app_env == "development",
    )

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _list_env(name: str, default: list[str]) -> list[str]:
    raw = os.getenv(name)
    if raw is None:
        return list(default)
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass
class Settings:
    """Runtime configuration, read from the environment (and `.env`)."""

    # ── Chain ─────────────────────────────────────────────────────────────
    rpc_url: str = "https://dream-rpc.somnia.network"
    chain_id: int = 50311
    rpc_timeout: float = 15.0
    block_poll_interval: float = 2.0

    # ── LLM ───────────────────────────────────────────────────────────────
    ai_provider: str | None = None
    llm_timeout: float = 20.0
    summary_failure_markers: list[str] = field(
        default_factory=lambda: ["developer", "missing"]
    )

    # ── Persistence ───────────────────────────────────────────────────────
    database_url: str | None = None
    cache_ttl: int = 3600

    # ── Streaming ─────────────────────────────────────────────────────────
    stream_ping_interval: float = 30.0

    # ── Server ────────────────────────────────────────────────────────────
    host: str = "0.0.0.0"
    port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        provider = os.getenv("AI_PROVIDER", "").strip().lower() or None
        if provider is None and os.getenv("OPENAI_API_KEY"):
            provider = "openai"

        return cls(
            rpc_url=os.getenv("SOMNIA_RPC_URL", cls.rpc_url),
            chain_id=int(os.getenv("SOMNIA_CHAIN_ID", str(cls.chain_id))),
            rpc_timeout=_float_env("RPC_TIMEOUT", cls.rpc_timeout),
            block_poll_interval=_float_env("BLOCK_POLL_INTERVAL", cls.block_poll_interval),
            ai_provider=provider,
            llm_timeout=_float_env("LLM_TIMEOUT", cls.llm_timeout),
            summary_failure_markers=_list_env(
                "SUMMARY_FAILURE_MARKERS", ["developer", "missing"]
            ),
            database_url=os.getenv("DATABASE_URL") or None,
            cache_ttl=int(_float_env("CACHE_TTL", cls.cache_ttl)),
            stream_ping_interval=_float_env("STREAM_PING_INTERVAL", cls.stream_ping_interval),
            host=os.getenv("HOST", cls.host),
            port=int(os.getenv("PORT", str(cls.port))),
            app_env=os.getenv("APP_ENV", cls.app_env),
            log_level=os.getenv("LOG_LEVEL", cls.log_level).upper(),
        )

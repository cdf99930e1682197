"""
Optional write-through persistence: query logs, per-wallet history, and a
TTL cache. Nothing in the query pipeline reads from here mid-request, and
every failure is logged and swallowed.
"""
import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy import JSON, Column, DateTime, Integer, String, Text, create_engine, select
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class QueryLogORM(Base):
    __tablename__ = "query_logs"

    id = Column(Integer, primary_key=True, index=True)
    wallet = Column(String, index=True, nullable=False)
    question = Column(Text, nullable=False)
    parsed_query = Column(JSON, nullable=True)
    answer = Column(Text, nullable=False)
    proof = Column(JSON, nullable=True)
    raw_json = Column(JSON, nullable=True)
    timestamp = Column(DateTime, default=_utcnow, nullable=False)


class QueryHistoryORM(Base):
    __tablename__ = "query_history"

    id = Column(Integer, primary_key=True, index=True)
    wallet_address = Column(String, index=True, nullable=False)
    query = Column(Text, nullable=False)
    response = Column(JSON, nullable=False)
    timestamp = Column(DateTime, default=_utcnow, index=True, nullable=False)


class CacheEntryORM(Base):
    __tablename__ = "cache"

    id = Column(Integer, primary_key=True, index=True)
    key = Column(String, unique=True, index=True, nullable=False)
    data = Column(JSON, nullable=True)
    expires_at = Column(DateTime, index=True, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, nullable=False)


# ── Stores ────────────────────────────────────────────────────────────────────


class NullStore:
    """Used when no DATABASE_URL is configured."""

    enabled = False

    async def log_query(self, **entry: Any) -> None:
        return None

    async def save_query_history(
        self, wallet_address: str, query: str, response: dict
    ) -> None:
        return None

    async def get_query_history(self, wallet_address: str, limit: int = 10) -> list[dict]:
        return []

    async def cache_blockchain_data(self, key: str, data: Any, ttl: int = 3600) -> None:
        return None

    async def get_cached_data(self, key: str) -> Optional[Any]:
        return None

    def close(self) -> None:
        return None


class QueryStore(NullStore):
    """SQLAlchemy-backed store. Blocking DB work runs in a worker thread."""

    enabled = True

    def __init__(self, database_url: str):
        kwargs: dict[str, Any] = {}
        if database_url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if database_url in ("sqlite://", "sqlite:///:memory:"):
                kwargs["poolclass"] = StaticPool
        self.engine = create_engine(database_url, **kwargs)
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(bind=self.engine, expire_on_commit=False)

    async def _run(self, fn, *args, default=None):
        try:
            return await asyncio.to_thread(fn, *args)
        except Exception as e:
            logger.warning("Persistence call %s failed: %s", fn.__name__, e)
            return default

    # ── Query Logs ────────────────────────────────────────────────────────

    async def log_query(self, **entry: Any) -> None:
        await self._run(self._log_query, entry)

    def _log_query(self, entry: dict) -> None:
        with self.Session() as session:
            session.add(QueryLogORM(
                wallet=entry["wallet"],
                question=entry["question"],
                parsed_query=entry.get("parsed_query"),
                answer=entry["answer"],
                proof=entry.get("proof"),
                raw_json=entry.get("raw_json"),
                timestamp=entry.get("timestamp") or _utcnow(),
            ))
            session.commit()

    # ── History ───────────────────────────────────────────────────────────

    async def save_query_history(
        self, wallet_address: str, query: str, response: dict
    ) -> None:
        await self._run(self._save_history, wallet_address, query, response)

    def _save_history(self, wallet_address: str, query: str, response: dict) -> None:
        with self.Session() as session:
            session.add(QueryHistoryORM(
                wallet_address=wallet_address, query=query, response=response
            ))
            session.commit()

    async def get_query_history(self, wallet_address: str, limit: int = 10) -> list[dict]:
        return await self._run(self._get_history, wallet_address, limit, default=[])

    def _get_history(self, wallet_address: str, limit: int) -> list[dict]:
        with self.Session() as session:
            rows = session.scalars(
                select(QueryHistoryORM)
                .where(QueryHistoryORM.wallet_address == wallet_address)
                .order_by(QueryHistoryORM.timestamp.desc(), QueryHistoryORM.id.desc())
                .limit(limit)
            ).all()
            return [
                {
                    "wallet_address": r.wallet_address,
                    "query": r.query,
                    "response": r.response,
                    "timestamp": r.timestamp,
                }
                for r in rows
            ]

    # ── Cache ─────────────────────────────────────────────────────────────

    async def cache_blockchain_data(self, key: str, data: Any, ttl: int = 3600) -> None:
        await self._run(self._cache, key, data, ttl)

    def _cache(self, key: str, data: Any, ttl: int) -> None:
        now = _utcnow()
        with self.Session() as session:
            entry = session.scalars(
                select(CacheEntryORM).where(CacheEntryORM.key == key)
            ).first()
            if entry is None:
                entry = CacheEntryORM(key=key)
                session.add(entry)
            entry.data = data
            entry.expires_at = now + timedelta(seconds=ttl)
            entry.updated_at = now
            session.commit()

    async def get_cached_data(self, key: str) -> Optional[Any]:
        return await self._run(self._get_cached, key)

    def _get_cached(self, key: str) -> Optional[Any]:
        with self.Session() as session:
            entry = session.scalars(
                select(CacheEntryORM).where(
                    CacheEntryORM.key == key, CacheEntryORM.expires_at > _utcnow()
                )
            ).first()
            return entry.data if entry else None

    def close(self) -> None:
        self.engine.dispose()


def build_store(database_url: Optional[str]) -> NullStore:
    if not database_url:
        return NullStore()
    try:
        return QueryStore(database_url)
    except Exception as e:
        logger.warning("Persistence disabled: %s", e)
        return NullStore()

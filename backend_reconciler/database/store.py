"""
Backing key-value store.

KeyValueStore is the narrow interface the repositories depend on: get, put
(optionally conditional on the key not existing), update, delete and a paged
scan with a continuation token. SqlAlchemyStore is the default implementation:
one table of JSON documents keyed by string, SQLite unless DATABASE_URL says
otherwise. SQLAlchemy sessions are synchronous, so every call is pushed to a
worker thread with asyncio.to_thread.
"""

from __future__ import annotations

import abc
import asyncio
import json
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator

from sqlalchemy import Column, Integer, String, Text, create_engine, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from backend_reconciler.core.exceptions import ItemExistsError, ItemNotFoundError
from backend_reconciler.recon_logging import get_logger

logger = get_logger(__name__)

Base = declarative_base()

DEFAULT_SCAN_LIMIT = 100


@dataclass(frozen=True)
class ScanPage:
    """One page of scan results; continuation_token is None on the last page."""

    items: list[dict[str, Any]] = field(default_factory=list)
    continuation_token: str | None = None


class KeyValueStore(abc.ABC):
    """Durable source of truth for participants and global stats."""

    @abc.abstractmethod
    async def get(self, key: str) -> dict[str, Any] | None: ...

    @abc.abstractmethod
    async def put(self, key: str, item: dict[str, Any], *, if_not_exists: bool = False) -> None:
        """Write item under key. Raises ItemExistsError when if_not_exists and the key exists."""

    @abc.abstractmethod
    async def update(self, key: str, fields: dict[str, Any]) -> dict[str, Any]:
        """Merge fields into an existing item. Raises ItemNotFoundError when absent."""

    @abc.abstractmethod
    async def delete(self, key: str) -> None: ...

    @abc.abstractmethod
    async def scan(
        self,
        filter: dict[str, Any] | None = None,
        start_token: str | None = None,
        limit: int = DEFAULT_SCAN_LIMIT,
    ) -> ScanPage:
        """
        Return up to `limit` keys' worth of items, in key order, after start_token.

        Like a DynamoDB scan, the filter is applied after the page is read, so a
        page can hold fewer than `limit` items while more pages remain.
        """

    async def scan_all(self, filter: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        """Follow continuation tokens until the scan is exhausted."""
        items: list[dict[str, Any]] = []
        token: str | None = None
        while True:
            page = await self.scan(filter, token)
            items.extend(page.items)
            token = page.continuation_token
            if token is None:
                return items

    async def aclose(self) -> None:
        return None


class StoredItem(Base):
    """One JSON document per key; item_type mirrors the document's `type` field."""

    __tablename__ = "reconciler_items"

    key = Column(String(256), primary_key=True)
    item_type = Column(String(64), nullable=True, index=True)
    data = Column(Text, nullable=False)
    updated_at = Column(Integer, nullable=False)  # Unix

    def to_dict(self) -> dict[str, Any]:
        return json.loads(self.data)


def _matches(item: dict[str, Any], filter: dict[str, Any]) -> bool:
    return all(item.get(name) == value for name, value in filter.items())


def _safe_url(url: str) -> str:
    return url.split("?")[0].split("//")[-1]


class SqlAlchemyStore(KeyValueStore):
    """KeyValueStore over any SQLAlchemy URL (SQLite by default)."""

    def __init__(self, database_url: str) -> None:
        connect_args: dict[str, Any] = {}
        engine_kwargs: dict[str, Any] = {"pool_pre_ping": True}
        if database_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
            if database_url in ("sqlite://", "sqlite:///:memory:"):
                # One shared connection, otherwise each thread sees its own empty database.
                engine_kwargs["poolclass"] = StaticPool
        self._url = database_url
        self._engine = create_engine(database_url, connect_args=connect_args, **engine_kwargs)
        self._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=self._engine)
        Base.metadata.create_all(bind=self._engine)
        logger.info("store_init", url=_safe_url(database_url))

    @contextmanager
    def _session_scope(self) -> Iterator[Session]:
        """Commits on success, rolls back on error."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # -- sync bodies, run in a worker thread ---------------------------------

    def _get_sync(self, key: str) -> dict[str, Any] | None:
        with self._session_scope() as session:
            row = session.get(StoredItem, key)
            return row.to_dict() if row is not None else None

    def _put_sync(self, key: str, item: dict[str, Any], if_not_exists: bool) -> None:
        data = json.dumps(item, default=str)
        item_type = item.get("type")
        now = int(time.time())
        try:
            with self._session_scope() as session:
                row = session.get(StoredItem, key)
                if row is None:
                    session.add(StoredItem(key=key, item_type=item_type, data=data, updated_at=now))
                elif if_not_exists:
                    raise ItemExistsError(f"Item already exists: {key}")
                else:
                    row.item_type = item_type
                    row.data = data
                    row.updated_at = now
        except IntegrityError as e:
            # Lost a race with a concurrent insert of the same key.
            raise ItemExistsError(f"Item already exists: {key}") from e

    def _update_sync(self, key: str, fields: dict[str, Any]) -> dict[str, Any]:
        with self._session_scope() as session:
            row = session.get(StoredItem, key)
            if row is None:
                raise ItemNotFoundError(f"Item not found: {key}")
            item = row.to_dict()
            item.update(fields)
            row.data = json.dumps(item, default=str)
            row.item_type = item.get("type")
            row.updated_at = int(time.time())
            return item

    def _delete_sync(self, key: str) -> None:
        with self._session_scope() as session:
            row = session.get(StoredItem, key)
            if row is not None:
                session.delete(row)

    def _scan_sync(
        self,
        filter: dict[str, Any] | None,
        start_token: str | None,
        limit: int,
    ) -> ScanPage:
        remaining = dict(filter or {})
        stmt = select(StoredItem).order_by(StoredItem.key).limit(limit)
        if "type" in remaining:
            stmt = stmt.where(StoredItem.item_type == remaining.pop("type"))
        if start_token is not None:
            stmt = stmt.where(StoredItem.key > start_token)
        with self._session_scope() as session:
            rows = list(session.scalars(stmt))
            items = [row.to_dict() for row in rows]
            last_key = rows[-1].key if rows else None
        if remaining:
            items = [item for item in items if _matches(item, remaining)]
        token = last_key if len(rows) == limit else None
        return ScanPage(items=items, continuation_token=token)

    # -- async interface ------------------------------------------------------

    async def get(self, key: str) -> dict[str, Any] | None:
        return await asyncio.to_thread(self._get_sync, key)

    async def put(self, key: str, item: dict[str, Any], *, if_not_exists: bool = False) -> None:
        await asyncio.to_thread(self._put_sync, key, item, if_not_exists)

    async def update(self, key: str, fields: dict[str, Any]) -> dict[str, Any]:
        return await asyncio.to_thread(self._update_sync, key, fields)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._delete_sync, key)

    async def scan(
        self,
        filter: dict[str, Any] | None = None,
        start_token: str | None = None,
        limit: int = DEFAULT_SCAN_LIMIT,
    ) -> ScanPage:
        if limit <= 0:
            raise ValueError("limit must be positive")
        return await asyncio.to_thread(self._scan_sync, filter, start_token, limit)

    async def aclose(self) -> None:
        await asyncio.to_thread(self._engine.dispose)

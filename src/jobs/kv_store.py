"""Key-value stores with per-key expiry, used for job records and locks."""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol, cast

from supabase import Client

from src.ingestion.storage import run_db

logger = logging.getLogger(__name__)

KV_TABLE = "kv_store"


class KeyValueStore(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> None: ...

    async def set_if_absent(self, key: str, value: str, ttl_seconds: int) -> bool: ...

    async def delete(self, key: str) -> None: ...

    async def exists(self, key: str) -> bool: ...


class InMemoryKeyValueStore:
    """Process-local store for tests and single-worker runs.

    Expiry uses the monotonic clock; expired keys are dropped on access.
    """

    def __init__(self) -> None:
        self._data: dict[str, tuple[str, float]] = {}
        self._lock = asyncio.Lock()

    def _live(self, key: str) -> str | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires = entry
        if time.monotonic() >= expires:
            del self._data[key]
            return None
        return value

    async def get(self, key: str) -> str | None:
        async with self._lock:
            return self._live(key)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        async with self._lock:
            self._data[key] = (value, time.monotonic() + ttl_seconds)

    async def set_if_absent(self, key: str, value: str, ttl_seconds: int) -> bool:
        async with self._lock:
            if self._live(key) is not None:
                return False
            self._data[key] = (value, time.monotonic() + ttl_seconds)
            return True

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._data.pop(key, None)

    async def exists(self, key: str) -> bool:
        return await self.get(key) is not None


class SupabaseKeyValueStore:
    """``kv_store`` table with an ``expires_at`` column.

    ``set_if_absent`` goes through the ``kv_set_if_absent`` function so the
    check and the write happen in one statement.
    """

    def __init__(self, client: Client) -> None:
        self.client = client

    @staticmethod
    def _expires_at(ttl_seconds: int) -> str:
        return (datetime.now(timezone.utc) + timedelta(seconds=ttl_seconds)).isoformat()

    async def get(self, key: str) -> str | None:
        now = datetime.now(timezone.utc).isoformat()
        result = await run_db(
            lambda: self.client.table(KV_TABLE)
            .select("value")
            .eq("key", key)
            .gt("expires_at", now)
            .execute(),
            f"kv get {key}",
        )
        rows = cast(list[dict[str, Any]], result.data)
        return rows[0]["value"] if rows else None

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        await run_db(
            lambda: self.client.table(KV_TABLE)
            .upsert(
                {"key": key, "value": value, "expires_at": self._expires_at(ttl_seconds)},
                on_conflict="key",
            )
            .execute(),
            f"kv set {key}",
        )

    async def set_if_absent(self, key: str, value: str, ttl_seconds: int) -> bool:
        result = await run_db(
            lambda: self.client.rpc(
                "kv_set_if_absent",
                {"p_key": key, "p_value": value, "p_ttl_seconds": ttl_seconds},
            ).execute(),
            f"kv set_if_absent {key}",
        )
        return bool(result.data)

    async def delete(self, key: str) -> None:
        await run_db(
            lambda: self.client.table(KV_TABLE).delete().eq("key", key).execute(),
            f"kv delete {key}",
        )

    async def exists(self, key: str) -> bool:
        return await self.get(key) is not None

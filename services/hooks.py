import logging
from collections import Counter
from enum import Enum
from typing import Dict, List, Optional

import polars as pl

from constants import HOOKS_FILE, USERS_FILE, HookMode
from models import Hook
from services.helper.document_store import DocumentStore

logger = logging.getLogger(__name__)

HOOK_SCHEMA = {
    "id": pl.Utf8,
    "guild_id": pl.Utf8,
    "channel_id": pl.Utf8,
    "streamer_id": pl.Utf8,
    "mode": pl.Int64,
}

USER_SCHEMA = {
    "id": pl.Utf8,
    "name": pl.Utf8,
    "login": pl.Utf8,
}

SCHEMAS = {
    HOOKS_FILE: HOOK_SCHEMA,
    USERS_FILE: USER_SCHEMA,
}


class UpsertResult(str, Enum):
    Created = "created"
    Updated = "updated"


def _to_hook(row: dict) -> Hook:
    return Hook(
        guild_id=row["guild_id"],
        channel_id=row["channel_id"],
        streamer_id=row["streamer_id"],
        mode=HookMode(row["mode"]),
    )


class HookRepository:
    def __init__(self, store: DocumentStore):
        self._store = store

    async def upsert(self, hook: Hook) -> UpsertResult:
        inserted = await self._store.upsert(HOOKS_FILE, hook.to_row())
        return UpsertResult.Created if inserted else UpsertResult.Updated

    async def get(
        self, guild_id: str, channel_id: str, streamer_id: str
    ) -> Optional[Hook]:
        rows = await self._store.find(
            HOOKS_FILE,
            {"guild_id": guild_id, "channel_id": channel_id, "streamer_id": streamer_id},
        )
        return _to_hook(rows[0]) if rows else None

    async def find_by_streamer(self, streamer_id: str) -> List[Hook]:
        """Every destination subscribed to a streamer."""
        rows = await self._store.find(HOOKS_FILE, {"streamer_id": streamer_id})
        return [_to_hook(row) for row in rows]

    async def find_by_guild(
        self, guild_id: str, channel_id: Optional[str] = None
    ) -> List[Hook]:
        filters = {"guild_id": guild_id}
        if channel_id is not None:
            filters["channel_id"] = channel_id
        rows = await self._store.find(HOOKS_FILE, filters)
        return [_to_hook(row) for row in rows]

    async def count_by_guild(self, guild_id: str) -> int:
        return await self._store.count(HOOKS_FILE, {"guild_id": guild_id})

    async def delete(
        self, guild_id: str, streamer_id: str, channel_id: Optional[str] = None
    ) -> int:
        filters = {"guild_id": guild_id, "streamer_id": streamer_id}
        if channel_id is not None:
            filters["channel_id"] = channel_id
        return await self._store.delete_many(HOOKS_FILE, filters)

    async def delete_one(self, hook: Hook) -> int:
        return await self._store.delete_many(HOOKS_FILE, {"id": hook.id})

    async def delete_by_streamer(self, streamer_id: str) -> int:
        removed = await self._store.delete_many(
            HOOKS_FILE, {"streamer_id": streamer_id}
        )
        if removed:
            logger.warning(f"Dropped {removed} hook(s) of streamer {streamer_id}")
        return removed

    async def streamer_counts(self) -> Dict[str, int]:
        """Number of hooks per streamer id."""
        rows = await self._store.find(HOOKS_FILE)
        return dict(Counter(row["streamer_id"] for row in rows))

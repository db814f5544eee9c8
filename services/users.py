import logging
from typing import Iterable, List, Optional

from constants import USERS_FILE
from models import User, UserRecord
from services.helper.document_store import DocumentStore
from services.twitch.api import TwitchApi

logger = logging.getLogger(__name__)


def _to_record(user: User) -> UserRecord:
    return UserRecord(id=user.id, name=user.display_name, login=user.login)


class UserRepository:
    """Local cache of Twitch users, filled from the API on a miss."""

    def __init__(self, store: DocumentStore, twitch: TwitchApi):
        self._store = store
        self._twitch = twitch

    async def find(self, value: str) -> Optional[UserRecord]:
        rows = await self._store.find(
            USERS_FILE, {"id": value, "login": value.lower()}, any_of=True
        )
        return UserRecord.model_validate(rows[0]) if rows else None

    async def upsert(self, user: UserRecord) -> None:
        await self._store.upsert(USERS_FILE, user.model_dump())

    async def save_users(self, users: Iterable[User]) -> List[UserRecord]:
        records = [_to_record(user) for user in users]
        for record in records:
            await self.upsert(record)
        return records

    async def resolve(self, value: str) -> Optional[UserRecord]:
        """Find a user by id or login, asking Twitch when the cache misses."""
        value = value.strip()
        if not value:
            return None

        cached = await self.find(value)
        if cached is not None:
            return cached

        ids = [value] if value.isdigit() else []
        users = await self._twitch.get_users(ids=ids, logins=[value.lower()])
        records = await self.save_users(users)
        if not records:
            return None

        for record in records:
            if record.id == value:
                return record
        return records[0]

    async def resolve_many(self, ids: Iterable[str]) -> List[UserRecord]:
        ids = list(dict.fromkeys(ids))
        rows = await self._store.find_in(USERS_FILE, "id", ids)
        records = {row["id"]: UserRecord.model_validate(row) for row in rows}

        missing = [user_id for user_id in ids if user_id not in records]
        if missing:
            for record in await self.save_users(
                await self._twitch.get_users(ids=missing)
            ):
                records[record.id] = record

        return [records[user_id] for user_id in ids if user_id in records]

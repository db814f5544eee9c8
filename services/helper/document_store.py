import asyncio
import logging
import os
from threading import Lock
from typing import Any, Dict, Iterable, Optional, Set

import polars as pl

from services.errors import PersistenceError

logger = logging.getLogger(__name__)

Schema = Dict[str, pl.DataType]


class DocumentStore:
    """
    Parquet backed collections kept in memory as polars DataFrames.

    Every mutation is applied to the in-memory frame immediately so reads
    always see it; dirty collections are written back to disk by a periodic
    flush task and once more on stop.
    """

    def __init__(
        self, directory: str, schemas: Dict[str, Schema], flush_interval: int = 30
    ):
        self._directory = directory
        self._schemas = schemas
        self._cache: Dict[str, pl.DataFrame] = {}
        self._dirty_files: Set[str] = set()
        self._lock = Lock()
        self._flush_interval = flush_interval
        self._flush_task: Optional[asyncio.Task] = None

    def start(self) -> None:
        """Start the periodic flush task"""
        if self._flush_task is None:
            self._flush_task = asyncio.create_task(self._periodic_flush())

    async def stop(self) -> None:
        """Stop and flush any remaining data"""
        if self._flush_task:
            self._flush_task.cancel()
            self._flush_task = None
        await self.flush()

    async def _periodic_flush(self) -> None:
        while True:
            try:
                await asyncio.sleep(self._flush_interval)
                await self.flush()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Error in periodic flush: {e}")

    async def flush(self) -> None:
        """Write every dirty collection to its parquet file"""
        with self._lock:
            dirty_files = self._dirty_files.copy()
            self._dirty_files.clear()

        loop = asyncio.get_running_loop()
        for collection in dirty_files:
            try:
                await loop.run_in_executor(None, self._flush_file_sync, collection)
            except Exception as e:
                logger.error(f"Error flushing {collection}: {e}")
                with self._lock:
                    self._dirty_files.add(collection)

    def _path(self, collection: str) -> str:
        return os.path.join(self._directory, collection)

    def _flush_file_sync(self, collection: str) -> None:
        with self._lock:
            df = self._cache.get(collection)
        if df is None:
            return
        os.makedirs(self._directory, exist_ok=True)
        df.write_parquet(self._path(collection))

    def _ensure_loaded(self, collection: str) -> pl.DataFrame:
        """Load a collection into the cache, creating an empty one if needed"""
        if collection in self._cache:
            return self._cache[collection]

        schema = self._schemas[collection]
        path = self._path(collection)
        if not os.path.isfile(path):
            df = pl.DataFrame(schema=schema)
        else:
            try:
                df = pl.read_parquet(path).select(
                    [pl.col(name).cast(dtype) for name, dtype in schema.items()]
                )
            except Exception as e:
                raise PersistenceError(f"Failed to load {collection}: {e}") from e

        self._cache[collection] = df
        return df

    @staticmethod
    def _predicate(filters: Optional[Dict[str, Any]], any_of: bool) -> pl.Expr:
        if not filters:
            return pl.lit(True)
        expressions = [pl.col(column) == value for column, value in filters.items()]
        combined = expressions[0]
        for expression in expressions[1:]:
            combined = combined | expression if any_of else combined & expression
        return combined

    async def find(
        self,
        collection: str,
        filters: Optional[Dict[str, Any]] = None,
        *,
        any_of: bool = False,
    ) -> list[dict]:
        """Rows matching every filter (or any filter when `any_of` is set)"""
        with self._lock:
            df = self._ensure_loaded(collection)
            return df.filter(self._predicate(filters, any_of)).to_dicts()

    async def find_in(
        self, collection: str, column: str, values: Iterable[Any]
    ) -> list[dict]:
        values = list(values)
        if not values:
            return []
        with self._lock:
            df = self._ensure_loaded(collection)
            return df.filter(pl.col(column).is_in(values)).to_dicts()

    async def count(
        self, collection: str, filters: Optional[Dict[str, Any]] = None
    ) -> int:
        with self._lock:
            df = self._ensure_loaded(collection)
            return df.filter(self._predicate(filters, False)).height

    async def upsert(self, collection: str, row: dict, id_column: str = "id") -> bool:
        """Insert or replace the row with the same id. Returns True on insert."""
        with self._lock:
            df = self._ensure_loaded(collection)
            id_value = row[id_column]
            existing = df.filter(pl.col(id_column) == id_value).height > 0
            new_df = pl.DataFrame([row], schema=self._schemas[collection])
            df = pl.concat([df.filter(pl.col(id_column) != id_value), new_df])
            self._cache[collection] = df
            self._dirty_files.add(collection)
            return not existing

    async def delete_many(self, collection: str, filters: Dict[str, Any]) -> int:
        """Delete every row matching all filters. Returns the number removed."""
        with self._lock:
            df = self._ensure_loaded(collection)
            kept = df.filter(~self._predicate(filters, False))
            removed = df.height - kept.height
            if removed:
                self._cache[collection] = kept
                self._dirty_files.add(collection)
            return removed

"""SQL implementation of RowStore.

The durable tier of the two-tier cache: one ``cache`` table keyed by the
row key, holding the serialized record and the write time. Uses an async
SQLAlchemy engine, so any async driver works (aiosqlite by default,
asyncpg for PostgreSQL).
"""

from sqlalchemy import BigInteger, Column, MetaData, String, Table, Text, delete, insert, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from ptgen_gateway.config import Settings, get_cache_engine, settings

metadata = MetaData()

cache_table = Table(
    "cache",
    metadata,
    Column("key", String(255), primary_key=True),
    Column("data", Text, nullable=False),
    Column("timestamp", BigInteger, nullable=False),
)


class SqlRowStore:
    """SQLAlchemy implementation of the RowStore protocol.

    This class satisfies the RowStore protocol through structural
    typing - no explicit inheritance needed.
    """

    def __init__(self, engine: AsyncEngine) -> None:
        """Initialize the row store.

        Args:
            engine: Async SQLAlchemy engine bound to the cache database.
        """
        self._engine = engine
        self._table = cache_table

    @classmethod
    def create(cls, config: Settings | None = None) -> "SqlRowStore | None":
        """Factory method to create a store from settings.

        Args:
            config: Settings to read CACHE_DATABASE_URL from. If None, uses global settings.

        Returns:
            Configured SqlRowStore, or None when CACHE_DATABASE_URL is not set
        """
        engine = get_cache_engine(config or settings)
        if engine is None:
            return None
        return cls(engine=engine)

    async def ensure_schema(self) -> None:
        """Create the cache table if it does not exist."""
        async with self._engine.begin() as conn:
            await conn.run_sync(metadata.create_all)

    async def get_row(self, key: str) -> bytes | None:
        """Read the data column for a key.

        Args:
            key: Row key

        Returns:
            Stored bytes, or None when no row exists
        """
        stmt = select(self._table.c.data).where(self._table.c.key == key)
        async with self._engine.connect() as conn:
            result = await conn.execute(stmt)
            row = result.first()
        if row is None:
            return None
        return row.data.encode("utf-8")

    async def upsert_row(self, key: str, data: bytes, timestamp: int) -> None:
        """Insert or replace the row for a key.

        Args:
            key: Row key
            data: Serialized record
            timestamp: Write time in epoch milliseconds
        """
        values = {"key": key, "data": data.decode("utf-8"), "timestamp": timestamp}
        dialect = self._engine.dialect.name

        async with self._engine.begin() as conn:
            if dialect in ("sqlite", "postgresql"):
                factory = sqlite_insert if dialect == "sqlite" else pg_insert
                stmt = factory(self._table).values(**values)
                stmt = stmt.on_conflict_do_update(
                    index_elements=[self._table.c.key],
                    set_={"data": stmt.excluded.data, "timestamp": stmt.excluded.timestamp},
                )
                await conn.execute(stmt)
            else:
                await conn.execute(delete(self._table).where(self._table.c.key == key))
                await conn.execute(insert(self._table).values(**values))

    async def health_check(self) -> bool:
        """Check if the database is reachable.

        Returns:
            True if a trivial query succeeds, False otherwise
        """
        try:
            async with self._engine.connect() as conn:
                await conn.execute(select(1))
            return True
        except SQLAlchemyError:
            return False

    async def close(self) -> None:
        """Dispose of the engine's connection pool."""
        await self._engine.dispose()

    @property
    def engine(self) -> AsyncEngine:
        """Get the SQLAlchemy engine."""
        return self._engine

"""
Database service using PostgreSQL with asyncpg.
Handles schema bootstrap, provider seeding, sample upserts and range scans.
"""

from datetime import datetime
from typing import List, Optional, Sequence

import asyncpg

from src.config import settings
from src.database.base import SEEDED_PROVIDERS, PriceStore
from src.exceptions import DatabaseError, UnknownProviderError
from src.logging_config import get_logger
from src.models.price import PriceSample, Provider

logger = get_logger(__name__)

CURRENT_SCHEMA_VERSION = 1

SAMPLE_COLUMNS = "provider_id, interval_start, interval_length, price, source_utc_offset"


class DatabaseService(PriceStore):
    """PostgreSQL-backed price sample store."""

    def __init__(
        self,
        database_url: str = None,
        provider_names: Sequence[str] = SEEDED_PROVIDERS,
        timescale_enabled: bool = False,
    ):
        self.database_url = database_url or settings.database_url
        self.provider_names = tuple(provider_names)
        self.timescale_enabled = timescale_enabled
        self._pool = None

    async def _get_pool(self) -> asyncpg.Pool:
        """Get or create connection pool."""
        if self._pool is None or self._pool.is_closing():
            self._pool = await asyncpg.create_pool(
                self.database_url,
                min_size=2,
                max_size=10,
                command_timeout=60,
                # interval arithmetic on timestamptz must not depend on DST
                server_settings={"timezone": "UTC"},
            )
        return self._pool

    async def close(self):
        """Close database connection pool."""
        if self._pool and not self._pool.is_closing():
            await self._pool.close()

    async def init(self) -> None:
        """Initialize database with tables, indexes and seeded providers."""
        try:
            pool = await self._get_pool()
            async with pool.acquire() as conn:
                current_version = await self._get_schema_version(conn)

                if current_version == 0:
                    await self._create_initial_schema(conn)
                    await self._set_schema_version(conn, CURRENT_SCHEMA_VERSION)
                    logger.info("Database initialized with schema version", version=CURRENT_SCHEMA_VERSION)

                await conn.executemany(
                    "INSERT INTO providers (name) VALUES ($1) ON CONFLICT (name) DO NOTHING",
                    [(name,) for name in self.provider_names],
                )

        except Exception as e:
            logger.error("Failed to initialize database", error=str(e))
            raise DatabaseError(f"Database initialization failed: {e}")

    async def _get_schema_version(self, conn: asyncpg.Connection) -> int:
        """Get current database schema version."""
        try:
            result = await conn.fetchval(
                "SELECT version FROM schema_version ORDER BY version DESC LIMIT 1"
            )
            return result if result else 0
        except asyncpg.UndefinedTableError:
            # Table doesn't exist, this is a new database
            return 0

    async def _set_schema_version(self, conn: asyncpg.Connection, version: int) -> None:
        """Set database schema version."""
        await conn.execute(
            "INSERT INTO schema_version (version) VALUES ($1)",
            version
        )

    async def _create_initial_schema(self, conn: asyncpg.Connection) -> None:
        """Create initial database schema."""
        await conn.execute("""
            CREATE TABLE schema_version (
                version INTEGER PRIMARY KEY,
                applied_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
            )
        """)

        await conn.execute("""
            CREATE TABLE providers (
                id BIGSERIAL PRIMARY KEY,
                name VARCHAR NOT NULL UNIQUE
            )
        """)

        await conn.execute("""
            CREATE TABLE price_samples (
                provider_id BIGINT NOT NULL REFERENCES providers (id),
                interval_start TIMESTAMPTZ NOT NULL,
                interval_length INTERVAL NOT NULL CHECK (interval_length > INTERVAL '0'),
                price NUMERIC(12,6) NOT NULL,
                source_utc_offset INTERVAL NOT NULL DEFAULT INTERVAL '0',
                updated_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
                UNIQUE (provider_id, interval_start)
            )
        """)

        if self.timescale_enabled:
            await conn.execute(
                "SELECT create_hypertable('price_samples', 'interval_start', if_not_exists => TRUE)"
            )

        logger.info("Initial database schema created", timescale=self.timescale_enabled)

    async def get_provider(self, name: str) -> Provider:
        """Look up a seeded provider by name."""
        try:
            pool = await self._get_pool()
            async with pool.acquire() as conn:
                row = await conn.fetchrow(
                    "SELECT id, name FROM providers WHERE name = $1 LIMIT 1", name
                )
        except Exception as e:
            logger.error("Failed to load provider", error=str(e), provider=name)
            raise DatabaseError(f"Provider lookup failed: {e}")

        if not row:
            raise UnknownProviderError(f"Unknown provider '{name}'")

        return Provider(id=row["id"], name=row["name"])

    async def upsert(self, sample: PriceSample) -> Optional[PriceSample]:
        """Upsert one sample atomically, resolving overlaps with its neighbours."""
        start = sample.interval_start
        try:
            pool = await self._get_pool()
            async with pool.acquire() as conn:
                async with conn.transaction():
                    # Serializes writers of one provider for the rest of the transaction
                    await conn.execute("SELECT pg_advisory_xact_lock($1)", sample.provider_id)

                    previous = await conn.fetchrow(
                        f"SELECT {SAMPLE_COLUMNS} FROM price_samples "
                        "WHERE provider_id = $1 AND interval_start = $2",
                        sample.provider_id, start
                    )

                    next_start = await conn.fetchval(
                        "SELECT MIN(interval_start) FROM price_samples "
                        "WHERE provider_id = $1 AND interval_start > $2 AND interval_start < $3",
                        sample.provider_id, start, sample.interval_end
                    )
                    length = next_start - start if next_start else sample.interval_length

                    await conn.execute("""
                        UPDATE price_samples
                        SET interval_length = $2 - interval_start,
                            updated_at = CURRENT_TIMESTAMP
                        WHERE provider_id = $1
                          AND interval_start < $2
                          AND interval_start + interval_length > $2
                    """, sample.provider_id, start)

                    await conn.execute(f"""
                        INSERT INTO price_samples ({SAMPLE_COLUMNS})
                        VALUES ($1, $2, $3, $4, $5)
                        ON CONFLICT (provider_id, interval_start) DO UPDATE SET
                            interval_length = EXCLUDED.interval_length,
                            price = EXCLUDED.price,
                            source_utc_offset = EXCLUDED.source_utc_offset,
                            updated_at = CURRENT_TIMESTAMP
                    """, sample.provider_id, start, length, sample.price, sample.source_utc_offset)

            return self._row_to_sample(previous) if previous else None

        except Exception as e:
            logger.error("Failed to upsert price sample", error=str(e), interval_start=start.isoformat())
            raise DatabaseError(f"Failed to save sample: {e}")

    async def range_query(self, provider_id: int, start: datetime, end: datetime) -> List[PriceSample]:
        """Samples overlapping [start, end), ordered by interval_start."""
        try:
            pool = await self._get_pool()
            async with pool.acquire() as conn:
                rows = await conn.fetch(f"""
                    SELECT {SAMPLE_COLUMNS}
                    FROM price_samples
                    WHERE provider_id = $1
                      AND interval_start < $3
                      AND interval_start + interval_length > $2
                    ORDER BY interval_start ASC
                """, provider_id, start, end)

            return [self._row_to_sample(row) for row in rows]

        except Exception as e:
            logger.error("Failed to query price samples", error=str(e), provider_id=provider_id)
            raise DatabaseError(f"Query failed: {e}")

    async def get_latest_update(self) -> Optional[datetime]:
        """Timestamp of the most recent sample write."""
        try:
            pool = await self._get_pool()
            async with pool.acquire() as conn:
                return await conn.fetchval("SELECT MAX(updated_at) FROM price_samples")
        except Exception as e:
            logger.error("Failed to get latest update", error=str(e))
            raise DatabaseError(f"Query failed: {e}")

    async def health_check(self) -> bool:
        """Check database health."""
        try:
            pool = await self._get_pool()
            async with pool.acquire() as conn:
                result = await conn.fetchval(
                    "SELECT COUNT(*) FROM information_schema.tables WHERE table_name = 'price_samples'"
                )

                if result != 1:
                    logger.error("Price samples table not found")
                    return False

            return True

        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return False

    @staticmethod
    def _row_to_sample(row) -> PriceSample:
        return PriceSample(
            provider_id=row["provider_id"],
            interval_start=row["interval_start"],
            interval_length=row["interval_length"],
            price=row["price"],
            source_utc_offset=row["source_utc_offset"],
        )


# Global database service instance
db_service = DatabaseService(
    settings.database_url,
    timescale_enabled=settings.timescale_enabled,
)

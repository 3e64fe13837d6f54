"""
PostgreSQL toggle store backend.

Rules live in one JSONB document per feature row. Value-set merges and
differences are computed by the server inside a single statement, so
concurrent writers are serialized by PostgreSQL's row locking instead of a
client-side read-modify-write.
"""

import re
from typing import Any, Dict, Iterable, List, Mapping, Optional

import asyncpg

from shared.errors import ValidationError
from shared.logging import get_logger
from ..rules import normalize_values
from ..serializers import JSONSerializer, Serializer
from .base import ToggleAdapter, Rules

DEFAULT_TABLE = "feature_toggles"

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class PostgresAdapter(ToggleAdapter):
    """JSONB-document backend on top of an asyncpg pool."""

    name = "postgres"

    def __init__(self, pool: asyncpg.Pool, table: str = DEFAULT_TABLE,
                 serializer: Optional[Serializer] = None, owns_pool: bool = False):
        if not _IDENTIFIER.match(table):
            raise ValidationError("Invalid table name", {"table": table})

        self.pool = pool
        self.table = table
        self.serializer = serializer or JSONSerializer()
        self.owns_pool = owns_pool
        self.logger = get_logger("toggles.adapters.postgres")

    @classmethod
    async def connect(cls, dsn: str, table: str = DEFAULT_TABLE,
                      serializer: Optional[Serializer] = None,
                      min_size: int = 2, max_size: int = 10,
                      command_timeout: float = 30) -> "PostgresAdapter":
        """Create a pool for ``dsn`` and an adapter that owns it."""
        pool = await asyncpg.create_pool(
            dsn,
            min_size=min_size,
            max_size=max_size,
            command_timeout=command_timeout
        )
        return cls(pool, table=table, serializer=serializer, owns_pool=True)

    async def setup(self) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {self.table} (
                    name TEXT NOT NULL CHECK (name <> ''),
                    rules JSONB NOT NULL DEFAULT '{{}}'::jsonb,
                    CONSTRAINT {self.table}_unique_name UNIQUE (name)
                )
            """)

        self.logger.info("Toggle table ensured", table=self.table)

    async def close(self) -> None:
        if self.owns_pool:
            await self.pool.close()
            self.logger.info("PostgreSQL pool closed")

    async def add(self, feature: str) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute(f"""
                INSERT INTO {self.table} (name) VALUES ($1)
                ON CONFLICT (name) DO NOTHING
            """, feature)

    async def remove(self, feature: str) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute(f"DELETE FROM {self.table} WHERE name = $1", feature)

    async def enable(self, feature: str, group: str, values: Iterable[Any] = ()) -> None:
        values = normalize_values(values)
        encoded = self.serializer.dumps(values)

        async with self.pool.acquire() as conn:
            await conn.execute(f"""
                INSERT INTO {self.table} AS t (name, rules)
                VALUES ($1, jsonb_build_object($2::text, $3::jsonb))
                ON CONFLICT (name) DO UPDATE
                SET rules = jsonb_set(t.rules, ARRAY[$2::text], (
                    SELECT COALESCE(jsonb_agg(DISTINCT merged.value ORDER BY merged.value), '[]'::jsonb)
                    FROM jsonb_array_elements(
                        COALESCE(t.rules -> $2::text, '[]'::jsonb) || $3::jsonb
                    ) AS merged(value)
                ))
            """, feature, group, encoded)

        self.logger.debug("Feature enabled", feature=feature, group=group, values=values)

    async def disable(self, feature: str, group: str, values: Iterable[Any] = ()) -> None:
        values = list(values or ())

        async with self.pool.acquire() as conn:
            if not values:
                await conn.execute(f"""
                    UPDATE {self.table} SET rules = rules - $2::text
                    WHERE name = $1
                """, feature, group)
            else:
                await conn.execute(f"""
                    UPDATE {self.table} SET rules = jsonb_set(rules, ARRAY[$2::text], (
                        SELECT COALESCE(jsonb_agg(kept.value ORDER BY kept.value), '[]'::jsonb)
                        FROM jsonb_array_elements(rules -> $2::text) AS kept(value)
                        WHERE NOT EXISTS (
                            SELECT 1 FROM jsonb_array_elements($3::jsonb) AS dropped(value)
                            WHERE dropped.value = kept.value
                        )
                    ))
                    WHERE name = $1 AND rules ? $2::text
                """, feature, group, self.serializer.dumps(normalize_values(values)))

        self.logger.debug("Feature disabled", feature=feature, group=group, values=values)

    async def rename(self, old_name: str, new_name: str) -> None:
        if old_name == new_name:
            return

        async with self.pool.acquire() as conn:
            async with conn.transaction():
                found = await conn.fetchval(
                    f"SELECT 1 FROM {self.table} WHERE name = $1 FOR UPDATE", old_name
                )
                if found is None:
                    return

                await conn.execute(f"DELETE FROM {self.table} WHERE name = $1", new_name)
                await conn.execute(
                    f"UPDATE {self.table} SET name = $1 WHERE name = $2", new_name, old_name
                )

        self.logger.debug("Feature renamed", old_name=old_name, new_name=new_name)

    async def rules(self, feature: str) -> Rules:
        async with self.pool.acquire() as conn:
            document = await conn.fetchval(
                f"SELECT rules FROM {self.table} WHERE name = $1", feature
            )

        return self._decode(document)

    async def exists(self, feature: str, group: Optional[str] = None) -> bool:
        async with self.pool.acquire() as conn:
            if group is None:
                return await conn.fetchval(
                    f"SELECT EXISTS (SELECT 1 FROM {self.table} WHERE name = $1)", feature
                )

            return await conn.fetchval(
                f"SELECT EXISTS (SELECT 1 FROM {self.table} WHERE name = $1 AND rules ? $2::text)",
                feature, group
            )

    async def features(self, group: Optional[str] = None) -> List[str]:
        async with self.pool.acquire() as conn:
            if group is None:
                rows = await conn.fetch(
                    f'SELECT name FROM {self.table} ORDER BY name COLLATE "C" ASC'
                )
            else:
                rows = await conn.fetch(
                    f'SELECT name FROM {self.table} WHERE rules ? $1::text ORDER BY name COLLATE "C" ASC',
                    group
                )

        return [row["name"] for row in rows]

    async def dump(self) -> Dict[str, Rules]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f'SELECT name, rules FROM {self.table} ORDER BY name COLLATE "C" ASC'
            )

        return {row["name"]: self._decode(row["rules"]) for row in rows}

    async def load(self, features: Mapping[str, Mapping[str, Iterable[Any]]]) -> None:
        records = [
            (feature, self.serializer.dumps({
                str(group): normalize_values(values) for group, values in rules.items()
            }))
            for feature, rules in features.items()
        ]

        async with self.pool.acquire() as conn:
            async with conn.transaction():
                await conn.executemany(f"""
                    INSERT INTO {self.table} AS t (name, rules) VALUES ($1, $2::jsonb)
                    ON CONFLICT (name) DO UPDATE SET rules = EXCLUDED.rules
                """, records)

        self.logger.info("Features loaded", count=len(records))

    async def clear(self) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute(f"TRUNCATE {self.table}")

    def _decode(self, document: Any) -> Rules:
        if document is None:
            return {}
        if isinstance(document, (str, bytes, bytearray)):
            return self.serializer.loads(document)
        return dict(document)

"""PostgreSQL implementation of the crate store.

Lexical retrieval runs against the ``tsv`` tsvector column with ``ts_rank``;
embeddings live in the nullable ``embedding`` pgvector column of the same
table and are read and written by crate id.

Connection management
- A shared asyncpg pool is created on demand and reused across calls
- Queries are funneled through ``_execute_query`` for uniform error handling
"""

from typing import Any, Dict, Iterable, List, Optional, Sequence

import asyncpg
import numpy as np
import structlog
from asyncpg import Connection, Pool
from pgvector.asyncpg import register_vector

from ..common.config import CrateSearchConfig
from ..models import Candidate
from .base import CrateStore, StoreConnectionError, StoreQueryError

logger = structlog.get_logger("store.pgvector")


def escape_like(value: str) -> str:
    """Escape ``LIKE`` wildcards so user text matches literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def row_to_candidate(row: Any) -> Candidate:
    """Map a result row onto a fresh ``Candidate``."""
    rank = row["rank"] if "rank" in row.keys() else None
    return Candidate(
        id=str(row["id"]),
        name=row["name"] or "",
        description=row["description"] or "",
        lexical_score=float(rank) if rank is not None else 0.0,
    )


class PgCrateStore(CrateStore):
    """PostgreSQL + pgvector implementation of the crate store."""

    def __init__(
        self,
        dsn: str,
        table_name: str = "crates",
        pool_size: int = 10,
        command_timeout: int = 60,
        vector_dimension: Optional[int] = None,
    ):
        """Configure a PostgreSQL-backed crate store.

        Parameters
        - dsn: PostgreSQL DSN including database and credentials
        - table_name: Validated identifier of the crates table
        - pool_size: Max size of asyncpg connection pool
        - command_timeout: Seconds to allow per DB command
        - vector_dimension: Expected dimensionality for stored vectors
        """
        self.dsn = dsn
        self.table_name = table_name
        self.pool_size = pool_size
        self.command_timeout = command_timeout
        self.vector_dimension = vector_dimension
        self._pool: Optional[Pool] = None

    @classmethod
    def from_config(cls, config: CrateSearchConfig) -> "PgCrateStore":
        return cls(
            dsn=config.cs_db_dsn,
            table_name=config.cs_table_name,
            pool_size=config.cs_db_pool_size,
            command_timeout=config.cs_db_command_timeout,
            vector_dimension=config.cs_vector_dimension,
        )

    async def _init_connection(self, conn: Connection) -> None:
        """Register the pgvector codec for asyncpg connections."""
        await register_vector(conn)

    async def _get_pool(self) -> Pool:
        """Get or create connection pool.

        Lazily initializes an asyncpg pool so callers don't pay startup cost
        unless/until they make a call that requires the database.
        """
        if self._pool is None:
            try:
                self._pool = await asyncpg.create_pool(
                    self.dsn,
                    min_size=1,
                    max_size=self.pool_size,
                    command_timeout=self.command_timeout,
                    init=self._init_connection,
                )
                logger.info("Created crate store connection pool", pool_size=self.pool_size)
            except Exception as e:
                logger.error("Failed to create crate store connection pool", error=str(e))
                raise StoreConnectionError(f"Failed to create connection pool: {e}") from e

        return self._pool

    async def _execute_query(
        self,
        query: str,
        *args: Any,
        fetch: bool = False,
        fetch_one: bool = False
    ) -> Any:
        """Execute a query with error handling.

        The ``fetch``/``fetch_one`` flags control how results are retrieved.
        Query failures are wrapped in ``StoreQueryError``; the driver error is
        kept as ``__cause__``.
        """
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                if fetch_one:
                    return await conn.fetchrow(query, *args)
                if fetch:
                    return await conn.fetch(query, *args)
                return await conn.execute(query, *args)
        except Exception as e:
            logger.error("Query execution failed", query=" ".join(query.split()), error=str(e))
            raise StoreQueryError(f"Query failed: {e}") from e

    async def _fetch_candidates(self, query: str, *args: Any) -> List[Candidate]:
        rows = await self._execute_query(query, *args, fetch=True)
        return [row_to_candidate(row) for row in rows]

    async def text_search(self, tsquery: str, limit: int) -> List[Candidate]:
        """Rank rows matching a ``to_tsquery`` expression."""
        query = f"""
            SELECT id, name, description, ts_rank(tsv, to_tsquery($1)) AS rank
            FROM {self.table_name}
            WHERE tsv @@ to_tsquery($1)
            ORDER BY rank DESC
            LIMIT $2
        """
        return await self._fetch_candidates(query, tsquery, limit)

    async def exact_match_search(self, query: str, limit: int = 50) -> List[Candidate]:
        escaped = escape_like(query)
        sql = f"""
            SELECT id, name, description,
                   (CASE
                     WHEN name ILIKE $1 THEN 1.0
                     WHEN name ILIKE $2 THEN 0.9
                     WHEN description ILIKE $1 THEN 0.8
                     ELSE 0.7
                   END) AS rank
            FROM {self.table_name}
            WHERE name ILIKE $2 OR description ILIKE $2
            ORDER BY rank DESC
            LIMIT $3
        """
        return await self._fetch_candidates(sql, f"{escaped}%", f"%{escaped}%", limit)

    async def loose_fulltext_search(self, query: str, limit: int = 150) -> List[Candidate]:
        """Search with ``websearch_to_tsquery``, or ``plainto_tsquery`` where
        the server predates it."""
        sql = f"""
            SELECT id, name, description, ts_rank(tsv, websearch_to_tsquery($1)) AS rank
            FROM {self.table_name}
            WHERE tsv @@ websearch_to_tsquery($1)
            ORDER BY rank DESC
            LIMIT $2
        """
        try:
            return await self._fetch_candidates(sql, query, limit)
        except StoreQueryError as e:
            if not isinstance(e.__cause__, asyncpg.exceptions.UndefinedFunctionError):
                raise
            logger.warning("websearch_to_tsquery unsupported, using plainto_tsquery")

        fallback_sql = f"""
            SELECT id, name, description, ts_rank(tsv, plainto_tsquery($1)) AS rank
            FROM {self.table_name}
            WHERE tsv @@ plainto_tsquery($1)
            ORDER BY rank DESC
            LIMIT $2
        """
        return await self._fetch_candidates(fallback_sql, query, limit)

    async def phrase_search(self, query: str, limit: int = 200) -> List[Candidate]:
        pattern = "%" + "%".join(escape_like(word) for word in query.split()) + "%"
        sql = f"""
            SELECT id, name, description,
                   ts_rank(tsv, phraseto_tsquery($1)) * 0.6 AS rank
            FROM {self.table_name}
            WHERE tsv @@ phraseto_tsquery($1)
               OR name ILIKE $2
               OR description ILIKE $2
            ORDER BY rank DESC
            LIMIT $3
        """
        return await self._fetch_candidates(sql, query, pattern, limit)

    async def fetch_embeddings(self, crate_ids: Sequence[str]) -> Dict[str, np.ndarray]:
        if not crate_ids:
            return {}
        sql = f"""
            SELECT id, embedding FROM {self.table_name}
            WHERE id = ANY($1::text[]) AND embedding IS NOT NULL
        """
        rows = await self._execute_query(sql, list(crate_ids), fetch=True)
        return {
            str(row["id"]): np.asarray(row["embedding"], dtype=np.float32)
            for row in rows
        }

    async def store_embedding(self, crate_id: str, vector: np.ndarray) -> None:
        try:
            vector_array = self._ensure_vector_dimension(vector)
        except ValueError as e:
            raise StoreQueryError(str(e)) from e

        sql = f"UPDATE {self.table_name} SET embedding = $1 WHERE id = $2"
        await self._execute_query(sql, vector_array, crate_id)

    async def fetch_missing_embeddings(
        self,
        after_id: Optional[str],
        limit: int
    ) -> List[Candidate]:
        sql = f"""
            SELECT id, name, description FROM {self.table_name}
            WHERE embedding IS NULL AND ($1::text IS NULL OR id > $1::text)
            ORDER BY id
            LIMIT $2
        """
        return await self._fetch_candidates(sql, after_id, limit)

    async def reset_embedding(self, crate_id: str) -> bool:
        sql = f"UPDATE {self.table_name} SET embedding = NULL WHERE id = $1 AND embedding IS NOT NULL"
        status = await self._execute_query(sql, crate_id)
        changed = _affected_rows(status) > 0
        logger.info("Reset crate embedding", crate_id=crate_id, changed=changed)
        return changed

    async def reset_all_embeddings(self) -> int:
        sql = f"UPDATE {self.table_name} SET embedding = NULL WHERE embedding IS NOT NULL"
        status = await self._execute_query(sql)
        count = _affected_rows(status)
        logger.info("Reset all crate embeddings", count=count)
        return count

    async def embedding_stats(self) -> Dict[str, int]:
        sql = f"""
            SELECT COUNT(*) AS total, COUNT(embedding) AS with_embedding
            FROM {self.table_name}
        """
        row = await self._execute_query(sql, fetch_one=True)
        return {
            "total": int(row["total"]) if row else 0,
            "with_embedding": int(row["with_embedding"]) if row else 0,
        }

    async def health_check(self) -> bool:
        """Check if the store is healthy."""
        try:
            await self._execute_query("SELECT 1", fetch_one=True)
            return True
        except Exception as e:
            logger.error("Health check failed", error=str(e))
            return False

    async def close(self) -> None:
        """Close the connection pool."""
        if self._pool:
            await self._pool.close()
            self._pool = None
            logger.info("Closed crate store connection pool")

    def _ensure_vector_dimension(self, vector: Iterable[float]) -> np.ndarray:
        """Ensure a vector matches the expected dimensionality."""
        array = np.asarray(vector, dtype=np.float32)
        if array.ndim != 1:
            raise ValueError("Vector must be one-dimensional")

        if self.vector_dimension is not None and array.shape[0] != self.vector_dimension:
            raise ValueError(
                f"Expected vector dimension {self.vector_dimension}, "
                f"got {array.shape[0]}"
            )
        return array


def _affected_rows(status: str) -> int:
    """Parse the row count from a command tag such as ``UPDATE 3``."""
    try:
        return int(status.split()[-1])
    except (AttributeError, IndexError, ValueError):
        return 0


def create_crate_store(config: CrateSearchConfig) -> PgCrateStore:
    """Create a crate store from configuration."""
    return PgCrateStore.from_config(config)

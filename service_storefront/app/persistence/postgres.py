"""
PostgreSQL persistence layer for Storefront documents.
"""

import json
from typing import Dict, List, Optional

import asyncpg

from shared.errors import PersistenceError
from shared.logging import get_logger
from shared.retry import RetryConfig, retry_on_exception

from .base import Document, DocumentStore, stamp

# Errors that mean the write or read did not happen
DATABASE_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)


class PostgreSQLDatabase:
    """Owns the connection pool shared by every collection."""

    def __init__(self, dsn: str, *, min_size: int = 2, max_size: int = 10):
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self.logger = get_logger("storefront.persistence.postgres")
        self.pool: Optional[asyncpg.Pool] = None
        self._collections: Dict[str, "PostgreSQLDocumentStore"] = {}

    async def start(self):
        """Start the persistence layer."""
        try:
            self.pool = await self._create_pool()
            await self._create_tables()
        except Exception as e:
            self.logger.error("Failed to start PostgreSQL persistence", error=str(e))
            raise PersistenceError("Failed to start PostgreSQL persistence", details={"error": str(e)}) from e

        self.logger.info("PostgreSQL persistence started")

    @retry_on_exception((OSError, asyncpg.CannotConnectNowError), RetryConfig(max_attempts=5, base_delay=0.5, max_delay=5.0))
    async def _create_pool(self) -> asyncpg.Pool:
        return await asyncpg.create_pool(
            self.dsn,
            min_size=self.min_size,
            max_size=self.max_size,
            command_timeout=30,
            init=_init_connection,
        )

    async def stop(self):
        """Stop the persistence layer."""
        if self.pool:
            await self.pool.close()
            self.logger.info("PostgreSQL persistence stopped")

    async def _create_tables(self):
        async with self.pool.acquire() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS documents (
                    collection VARCHAR(64) NOT NULL,
                    id VARCHAR(64) NOT NULL,
                    body JSONB NOT NULL,
                    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
                    updated_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
                    PRIMARY KEY (collection, id)
                );
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_documents_body ON documents USING GIN (body jsonb_path_ops);
            """)

    def collection(self, name: str) -> "PostgreSQLDocumentStore":
        if name not in self._collections:
            self._collections[name] = PostgreSQLDocumentStore(self, name)
        return self._collections[name]

    async def health_check(self) -> bool:
        """Check PostgreSQL health."""
        if not self.pool:
            return False
        try:
            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
            return True
        except DATABASE_ERRORS:
            return False


async def _init_connection(conn: asyncpg.Connection) -> None:
    await conn.set_type_codec(
        "jsonb",
        encoder=json.dumps,
        decoder=json.loads,
        schema="pg_catalog",
    )


class PostgreSQLDocumentStore(DocumentStore):
    """One collection stored as JSONB rows in the shared ``documents`` table."""

    def __init__(self, database: PostgreSQLDatabase, collection: str):
        super().__init__(collection)
        self.database = database
        self.logger = get_logger(f"storefront.persistence.{collection}")

    @property
    def pool(self) -> asyncpg.Pool:
        if self.database.pool is None:
            raise PersistenceError("Document store not started", details={"collection": self.collection})
        return self.database.pool

    async def find(self, filter: Optional[Document] = None) -> List[Document]:
        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(
                    """
                    SELECT body FROM documents
                    WHERE collection = $1 AND body @> $2::jsonb
                    ORDER BY created_at, id
                    """,
                    self.collection,
                    filter or {},
                )
        except DATABASE_ERRORS as e:
            raise self._error("find", e)
        return [row["body"] for row in rows]

    async def find_by_id(self, document_id: str) -> Optional[Document]:
        try:
            async with self.pool.acquire() as conn:
                body = await conn.fetchval(
                    "SELECT body FROM documents WHERE collection = $1 AND id = $2",
                    self.collection,
                    document_id,
                )
        except DATABASE_ERRORS as e:
            raise self._error("find_by_id", e)
        return body

    async def count(self, filter: Optional[Document] = None) -> int:
        try:
            async with self.pool.acquire() as conn:
                return await conn.fetchval(
                    "SELECT count(*) FROM documents WHERE collection = $1 AND body @> $2::jsonb",
                    self.collection,
                    filter or {},
                )
        except DATABASE_ERRORS as e:
            raise self._error("count", e)

    async def save(self, document: Document) -> Document:
        stored = stamp(document)
        try:
            async with self.pool.acquire() as conn:
                body = await conn.fetchval(
                    """
                    INSERT INTO documents (collection, id, body)
                    VALUES ($1, $2, $3::jsonb)
                    ON CONFLICT (collection, id) DO UPDATE SET
                        body = EXCLUDED.body,
                        updated_at = NOW()
                    RETURNING body
                    """,
                    self.collection,
                    stored["id"],
                    stored,
                )
        except DATABASE_ERRORS as e:
            raise self._error("save", e)
        return body

    async def delete(self, document_id: str) -> bool:
        try:
            async with self.pool.acquire() as conn:
                status = await conn.execute(
                    "DELETE FROM documents WHERE collection = $1 AND id = $2",
                    self.collection,
                    document_id,
                )
        except DATABASE_ERRORS as e:
            raise self._error("delete", e)
        # Status tag is "DELETE <rows>"
        return status.split()[-1] != "0"

    async def health_check(self) -> bool:
        return await self.database.health_check()

    def _error(self, operation: str, error: Exception) -> PersistenceError:
        self.logger.error("Document store operation failed", operation=operation, error=str(error))
        return PersistenceError(
            f"Document store {operation} failed",
            details={"collection": self.collection, "operation": operation},
        )

"""
PostgreSQL document store for the Gate Access service.
"""

import json
from contextlib import asynccontextmanager
from typing import Dict, Any, Optional, List

import asyncpg

from shared.logging import get_logger
from shared.errors import AccessLayerException
from .base import (
    Document, StoreConflictError, StoreError, Transaction, TransactionalStore, apply_write
)
from .paths import parent_of, validate_document_path


class PostgresTransaction(Transaction):
    """Transaction bound to one connection inside a SERIALIZABLE block."""

    def __init__(self, conn: asyncpg.Connection):
        super().__init__()
        self._conn = conn

    async def _read(self, path: str) -> Optional[Document]:
        row = await self._conn.fetchrow(
            "SELECT path, data FROM documents WHERE path = $1 FOR UPDATE",
            path
        )
        return Document(row["path"], row["data"]) if row else None

    async def _list(self, collection_path: str) -> List[Document]:
        rows = await self._conn.fetch(
            "SELECT path, data FROM documents WHERE parent = $1 ORDER BY path FOR UPDATE",
            collection_path
        )
        return [Document(row["path"], row["data"]) for row in rows]

    async def flush(self) -> None:
        """Write every queued change; runs before the enclosing commit."""
        staged: Dict[str, Optional[Dict[str, Any]]] = {}

        for write in self._writes:
            if write.path not in staged:
                staged[write.path] = await self._conn.fetchval(
                    "SELECT data FROM documents WHERE path = $1 FOR UPDATE",
                    write.path
                )
            staged[write.path] = apply_write(staged[write.path], write)

        for path, data in staged.items():
            await self._conn.execute("""
                INSERT INTO documents (path, parent, data)
                VALUES ($1, $2, $3)
                ON CONFLICT (path) DO UPDATE SET
                    data = EXCLUDED.data,
                    updated_at = NOW()
            """, path, parent_of(path), data)


class PostgresDocumentStore(TransactionalStore):
    """asyncpg-backed TransactionalStore with a single JSONB documents table."""

    def __init__(self, dsn: str):
        self.dsn = dsn
        self.logger = get_logger("gate_access.store.postgres")
        self.pool: Optional[asyncpg.Pool] = None

    async def start(self):
        """Start the persistence layer."""
        try:
            self.pool = await asyncpg.create_pool(
                self.dsn,
                min_size=2,
                max_size=10,
                command_timeout=30,
                init=self._init_connection
            )

            await self._create_tables()

            self.logger.info("PostgreSQL document store started")

        except (asyncpg.PostgresError, OSError) as e:
            self.logger.error("Failed to start PostgreSQL document store", error=str(e))
            raise AccessLayerException("POSTGRES_START_FAILED", str(e))

    async def stop(self):
        """Stop the persistence layer."""
        if self.pool:
            await self.pool.close()
            self.logger.info("PostgreSQL document store stopped")

    @staticmethod
    async def _init_connection(conn: asyncpg.Connection):
        await conn.set_type_codec(
            "jsonb",
            encoder=json.dumps,
            decoder=json.loads,
            schema="pg_catalog"
        )

    async def _create_tables(self):
        """Create database tables."""
        async with self.pool.acquire() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS documents (
                    path TEXT PRIMARY KEY,
                    parent TEXT NOT NULL,
                    data JSONB NOT NULL DEFAULT '{}',
                    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
                    updated_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
                );
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_documents_parent ON documents(parent);
            """)

    async def get(self, path: str) -> Optional[Document]:
        row = await self.pool.fetchrow(
            "SELECT path, data FROM documents WHERE path = $1",
            validate_document_path(path)
        )
        return Document(row["path"], row["data"]) if row else None

    async def list_collection(self, collection_path: str) -> List[Document]:
        rows = await self.pool.fetch(
            "SELECT path, data FROM documents WHERE parent = $1 ORDER BY path",
            collection_path
        )
        return [Document(row["path"], row["data"]) for row in rows]

    @asynccontextmanager
    async def transaction(self):
        async with self.pool.acquire() as conn:
            try:
                async with conn.transaction(isolation="serializable"):
                    txn = PostgresTransaction(conn)
                    yield txn
                    await txn.flush()
            except asyncpg.exceptions.SerializationError as e:
                raise StoreConflictError(str(e)) from e
            except (asyncpg.PostgresError, asyncpg.InterfaceError) as e:
                raise StoreError(str(e)) from e

    async def health_check(self) -> bool:
        """Check database health."""
        if self.pool is None:
            return False
        try:
            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
                return True
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError):
            return False

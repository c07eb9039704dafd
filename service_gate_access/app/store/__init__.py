"""
Document store package.

Provides the TransactionalStore interface and its backends:

- postgres: asyncpg-backed store used in deployed environments.
- memory: in-process store for local development and tests.

Workflows receive a store instance through their constructor; nothing
in the service holds a process-wide database handle.
"""

from .base import (
    Document,
    DocumentExistsError,
    DocumentMissingError,
    StoreConflictError,
    StoreError,
    Transaction,
    TransactionalStore,
)
from .memory import InMemoryDocumentStore


def create_store(backend: str, postgres_dsn: str) -> TransactionalStore:
    """Build the store selected by configuration."""
    if backend == "memory":
        return InMemoryDocumentStore()
    if backend == "postgres":
        from .postgres import PostgresDocumentStore
        return PostgresDocumentStore(postgres_dsn)
    raise ValueError(f"Unknown store backend: {backend}")

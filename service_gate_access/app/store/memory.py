"""
In-process document store for local development and tests.

Transactions are optimistic: every document and collection read inside a
transaction records the version it saw, and the commit re-checks those
versions under a lock before swapping in the new state in one step.
"""

import asyncio
import copy
from contextlib import asynccontextmanager
from typing import Dict, Any, Optional, List, Tuple

from shared.logging import get_logger
from .base import (
    Document, StoreConflictError, Transaction, TransactionalStore, apply_write
)
from .paths import parent_of, validate_document_path

# path -> (version, data)
_State = Dict[str, Tuple[int, Dict[str, Any]]]


class InMemoryTransaction(Transaction):
    """Transaction over an InMemoryDocumentStore snapshot."""

    def __init__(self, store: "InMemoryDocumentStore"):
        super().__init__()
        self._store = store
        self.read_versions: Dict[str, int] = {}
        self.read_collections: Dict[str, Dict[str, int]] = {}

    async def _read(self, path: str) -> Optional[Document]:
        entry = self._store._documents.get(path)
        self.read_versions[path] = entry[0] if entry else 0
        if entry is None:
            return None
        return Document(path, copy.deepcopy(entry[1]))

    async def _list(self, collection_path: str) -> List[Document]:
        children = self._store._children(collection_path)
        self.read_collections[collection_path] = {
            path: version for path, (version, _) in children
        }
        return [Document(path, copy.deepcopy(data)) for path, (_, data) in children]


class InMemoryDocumentStore(TransactionalStore):
    """Dictionary-backed TransactionalStore."""

    def __init__(self, documents: Optional[Dict[str, Dict[str, Any]]] = None):
        self.logger = get_logger("gate_access.store.memory")
        self._documents: _State = {}
        self._lock = asyncio.Lock()
        self.commit_count = 0

        for path, data in (documents or {}).items():
            self.seed(path, data)

    def seed(self, path: str, data: Dict[str, Any]) -> None:
        """Insert or replace a document without a transaction."""
        path = validate_document_path(path)
        version = self._documents[path][0] + 1 if path in self._documents else 1
        self._documents[path] = (version, copy.deepcopy(data))

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        """Copy of every stored document, keyed by path."""
        return {path: copy.deepcopy(data) for path, (_, data) in self._documents.items()}

    async def get(self, path: str) -> Optional[Document]:
        entry = self._documents.get(validate_document_path(path))
        if entry is None:
            return None
        return Document(path, copy.deepcopy(entry[1]))

    async def list_collection(self, collection_path: str) -> List[Document]:
        return [
            Document(path, copy.deepcopy(data))
            for path, (_, data) in self._children(collection_path)
        ]

    @asynccontextmanager
    async def transaction(self):
        txn = InMemoryTransaction(self)
        yield txn
        await self._commit(txn)

    def _children(self, collection_path: str) -> List[Tuple[str, Tuple[int, Dict[str, Any]]]]:
        return sorted(
            (path, entry) for path, entry in self._documents.items()
            if parent_of(path) == collection_path
        )

    async def _commit(self, txn: InMemoryTransaction) -> None:
        writes = txn.writes
        if not writes:
            return

        async with self._lock:
            for path, version in txn.read_versions.items():
                entry = self._documents.get(path)
                if (entry[0] if entry else 0) != version:
                    raise StoreConflictError(f"Document changed during transaction: {path}")

            for collection_path, versions in txn.read_collections.items():
                current = {path: version for path, (version, _) in self._children(collection_path)}
                if current != versions:
                    raise StoreConflictError(f"Collection changed during transaction: {collection_path}")

            staged: _State = dict(self._documents)
            for write in writes:
                entry = staged.get(write.path)
                data = apply_write(entry[1] if entry else None, write)
                staged[write.path] = ((entry[0] if entry else 0) + 1, data)

            self._apply(staged)

        self.logger.debug("Transaction committed", writes=len(writes))

    def _apply(self, staged: _State) -> None:
        self._documents = staged
        self.commit_count += 1

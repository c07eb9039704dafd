"""
Transactional document store interface.

Records are JSON documents addressed by slash-separated paths that
alternate collection and document ids (``users/{uid}/addresses/{id}``).
A transaction buffers its writes and applies all of them atomically on
commit, so either every write becomes visible or none does.
"""

import copy
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any, Optional, List, AsyncContextManager

from .paths import leaf_id, validate_document_path


class StoreError(Exception):
    """Base error raised by store backends."""


class StoreConflictError(StoreError):
    """A concurrent writer changed a record read by the transaction."""


class DocumentExistsError(StoreError):
    """``create`` targeted a path that already holds a document."""


class DocumentMissingError(StoreError):
    """``update`` targeted a path with no document."""


@dataclass
class Document:
    """A stored record and its path."""
    path: str
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def id(self) -> str:
        return leaf_id(self.path)


class WriteOp(str, Enum):
    CREATE = "create"
    SET = "set"
    MERGE = "merge"
    UPDATE = "update"


@dataclass
class PendingWrite:
    op: WriteOp
    path: str
    data: Dict[str, Any]


def apply_write(current: Optional[Dict[str, Any]], write: PendingWrite) -> Dict[str, Any]:
    """Compute the document produced by applying ``write`` to ``current``."""
    if write.op == WriteOp.CREATE:
        if current is not None:
            raise DocumentExistsError(write.path)
        return copy.deepcopy(write.data)

    if write.op == WriteOp.SET:
        return copy.deepcopy(write.data)

    if write.op == WriteOp.UPDATE and current is None:
        raise DocumentMissingError(write.path)

    merged = copy.deepcopy(current) if current is not None else {}
    merged.update(copy.deepcopy(write.data))
    return merged


class Transaction(ABC):
    """Read-modify-write unit of work.

    All reads must happen before the first write is queued.
    """

    def __init__(self):
        self._writes: List[PendingWrite] = []

    @property
    def writes(self) -> List[PendingWrite]:
        return list(self._writes)

    async def get(self, path: str) -> Optional[Document]:
        self._check_read_allowed()
        return await self._read(validate_document_path(path))

    async def list_collection(self, collection_path: str) -> List[Document]:
        self._check_read_allowed()
        return await self._list(collection_path)

    def create(self, path: str, data: Dict[str, Any]) -> None:
        self._queue(WriteOp.CREATE, path, data)

    def set(self, path: str, data: Dict[str, Any], merge: bool = False) -> None:
        self._queue(WriteOp.MERGE if merge else WriteOp.SET, path, data)

    def update(self, path: str, data: Dict[str, Any]) -> None:
        self._queue(WriteOp.UPDATE, path, data)

    def _queue(self, op: WriteOp, path: str, data: Dict[str, Any]) -> None:
        self._writes.append(PendingWrite(op, validate_document_path(path), copy.deepcopy(data)))

    def _check_read_allowed(self) -> None:
        if self._writes:
            raise StoreError("Transactions require all reads to be executed before all writes")

    @abstractmethod
    async def _read(self, path: str) -> Optional[Document]:
        ...

    @abstractmethod
    async def _list(self, collection_path: str) -> List[Document]:
        ...


class TransactionalStore(ABC):
    """Durable store exposing atomic multi-document read-modify-write."""

    async def start(self) -> None:
        pass

    async def stop(self) -> None:
        pass

    @abstractmethod
    async def get(self, path: str) -> Optional[Document]:
        """Read one document outside any transaction."""

    @abstractmethod
    async def list_collection(self, collection_path: str) -> List[Document]:
        """Read every document directly under a collection path."""

    @abstractmethod
    def transaction(self) -> AsyncContextManager[Transaction]:
        """Async context manager yielding a Transaction.

        Queued writes commit atomically when the block exits cleanly and are
        discarded when it raises.
        """

    async def health_check(self) -> bool:
        return True


from __future__ import annotations

from typing import Any, Dict, Optional


class WriteBatch:
    """
    A bounded group of document writes committed together.

    - set()    -> queue a full overwrite of ``collection/doc_id``
    - commit() -> submit the queued writes; raises on failure
    """

    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        ...

    def commit(self) -> None:
        ...


class DocumentStoreClient:
    """Document database with a batched-write API."""

    name: str = "base"

    def batch(self) -> WriteBatch:
        """Return a new, empty write batch."""
        ...


class BlobStoreClient:
    """Object storage accepting single-object uploads."""

    name: str = "base"

    def upload(self, local_path: str, *, destination: str, content_type: Optional[str] = None) -> None:
        """Upload ``local_path`` to object ``destination``; raises on failure."""
        ...

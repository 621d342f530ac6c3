from __future__ import annotations

import json
import os
from typing import Callable, List, Optional, Tuple

from pydantic import ValidationError

from stackrestore.core.config.settings import DOCUMENT_BATCH_LIMIT
from stackrestore.core.errors import DocumentStoreError, RestoreError
from stackrestore.core.logger import get_logger
from stackrestore.core.restore.backends.base import DocumentStoreClient, WriteBatch
from stackrestore.core.restore.models import ComponentKind, DocumentRecord, RestoreResult
from stackrestore.core.restore.paths import StagedArchive
from stackrestore.core.restore.restorers.base import ComponentRestorer


def load_document_dump(path: str) -> List[Tuple[str, List[DocumentRecord]]]:
    """Parse ``firestore.json`` into (collection, records) pairs in file order."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise DocumentStoreError("Document dump could not be read.", path=os.path.basename(path), reason=str(e)) from e
    if not isinstance(raw, dict):
        raise DocumentStoreError("Document dump must map collection names to document lists.", path=os.path.basename(path))

    out: List[Tuple[str, List[DocumentRecord]]] = []
    for collection, docs in raw.items():
        if not isinstance(docs, list):
            raise DocumentStoreError("Collection dump must be a list of documents.", collection=collection)
        try:
            out.append((str(collection), [DocumentRecord.model_validate(d) for d in docs]))
        except ValidationError as e:
            raise DocumentStoreError("Document record is malformed.", collection=collection, reason=str(e)) from e
    return out


class DocumentStoreRestorer(ComponentRestorer):
    """
    Replays every dumped document as an overwrite keyed by its original id, so
    re-running the same backup converges instead of duplicating.

    Writes share one batch across collection boundaries; a batch is committed
    when it reaches ``batch_size`` and once more for the remainder.
    """

    kind = ComponentKind.DOCUMENT_STORE
    continues_on_item_failure = False

    def __init__(self, client_factory: Callable[[], DocumentStoreClient], *, batch_size: int = DOCUMENT_BATCH_LIMIT, logger=None):
        super().__init__(logger or get_logger("document_store"))
        if not 1 <= int(batch_size) <= DOCUMENT_BATCH_LIMIT:
            raise ValueError(f"batch_size must be between 1 and {DOCUMENT_BATCH_LIMIT}")
        self.client_factory = client_factory
        self.batch_size = int(batch_size)

    def restore(self, staged: StagedArchive) -> RestoreResult:
        collections = load_document_dump(staged.document_dump)
        try:
            client = self.client_factory()
        except RestoreError:
            raise
        except Exception as e:  # noqa: BLE001
            raise DocumentStoreError("Document store client could not be created.", reason=str(e)) from e
        result = RestoreResult(kind=self.kind)

        batch: Optional[WriteBatch] = None
        pending = 0

        def commit(b: WriteBatch, size: int) -> None:
            number = result.batches + 1
            ok = self._run_item(
                result,
                f"batch {number}",
                b.commit,
                wrap=lambda e: DocumentStoreError("Batch commit failed.", batch=number, operations=size, reason=str(e)),
            )
            result.batches += 1
            if ok:
                result.items_ok += size

        for collection, docs in collections:
            self.log.info(f"  restoring collection: {collection} ({len(docs)} documents)")
            for doc in docs:
                if batch is None:
                    batch = client.batch()
                try:
                    batch.set(collection, doc.id, dict(doc.data))
                except Exception as e:  # noqa: BLE001
                    raise DocumentStoreError("Document write could not be queued.", collection=collection, doc_id=doc.id, reason=str(e)) from e
                pending += 1
                result.items_total += 1
                if pending >= self.batch_size:
                    commit(batch, pending)
                    batch, pending = None, 0

        if batch is not None and pending > 0:
            commit(batch, pending)

        result.detail = f"{result.items_total} documents in {result.batches} batches"
        return result

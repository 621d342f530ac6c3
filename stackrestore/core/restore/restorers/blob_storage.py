from __future__ import annotations

import json
import os
from typing import Callable, List

from pydantic import ValidationError

from stackrestore.core.errors import BlobObjectError, BlobStorageError, RestoreError
from stackrestore.core.logger import get_logger
from stackrestore.core.restore.backends.base import BlobStoreClient
from stackrestore.core.restore.models import BlobEntry, ComponentKind, RestoreResult
from stackrestore.core.restore.paths import StagedArchive
from stackrestore.core.restore.restorers.base import ComponentRestorer


def load_blob_manifest(path: str) -> List[BlobEntry]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise BlobStorageError("Storage manifest could not be read.", reason=str(e)) from e
    if not isinstance(raw, list):
        raise BlobStorageError("Storage manifest must be a list of objects.")
    try:
        return [BlobEntry.model_validate(x) for x in raw]
    except ValidationError as e:
        raise BlobStorageError("Storage manifest entry is malformed.", reason=str(e)) from e


class BlobStorageRestorer(ComponentRestorer):
    """
    Uploads each staged object back to its original name. One failed upload
    does not reject the whole set.
    """

    kind = ComponentKind.BLOB_STORAGE
    continues_on_item_failure = True

    def __init__(self, client_factory: Callable[[], BlobStoreClient], *, logger=None):
        super().__init__(logger or get_logger("blob_storage"))
        self.client_factory = client_factory

    def restore(self, staged: StagedArchive) -> RestoreResult:
        if not os.path.isdir(staged.storage_dir):
            raise BlobStorageError("Storage staging directory is missing.", path="storage")
        entries = load_blob_manifest(staged.storage_manifest)
        try:
            client = self.client_factory()
        except RestoreError:
            raise
        except Exception as e:  # noqa: BLE001
            raise BlobStorageError("Blob storage client could not be created.", reason=str(e)) from e

        result = RestoreResult(kind=self.kind, items_total=len(entries))
        self.log.info(f"  restoring {len(entries)} files")
        for entry in entries:
            local_path = os.path.join(staged.storage_dir, entry.flattened_name)

            def upload(entry: BlobEntry = entry, local_path: str = local_path) -> None:
                if not os.path.isfile(local_path):
                    raise FileNotFoundError(f"staged file missing: {entry.flattened_name}")
                client.upload(local_path, destination=entry.name, content_type=entry.content_type)

            ok = self._run_item(
                result,
                entry.name,
                upload,
                wrap=lambda e, name=entry.name: BlobObjectError(f"Failed to restore {name}.", name=name, reason=str(e)),
            )
            if ok:
                result.items_ok += 1
                self.log.info(f"    restored: {entry.name}")

        if result.failures:
            result.status = "partial"
        result.detail = f"{result.items_ok}/{result.items_total} objects uploaded"
        return result

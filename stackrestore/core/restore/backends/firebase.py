from __future__ import annotations

from typing import Any, Dict, Optional

from stackrestore.core.config.settings import RestoreSettings
from stackrestore.core.errors import DependencyMissing
from stackrestore.core.restore.backends.base import BlobStoreClient, DocumentStoreClient, WriteBatch

_APP_NAME = "stackrestore"


def _firebase_app(settings: RestoreSettings) -> Any:
    try:
        import firebase_admin  # type: ignore
        from firebase_admin import credentials  # type: ignore
    except Exception as e:
        raise DependencyMissing(f"firebase-admin not available: {e}") from e

    try:
        return firebase_admin.get_app(_APP_NAME)
    except ValueError:
        pass
    options: Dict[str, Any] = {"projectId": settings.firebase_admin_project_id}
    bucket = settings.storage_bucket()
    if bucket:
        options["storageBucket"] = bucket
    cred = credentials.Certificate(settings.firebase_credentials())
    return firebase_admin.initialize_app(cred, options, name=_APP_NAME)


class FirestoreWriteBatch(WriteBatch):
    def __init__(self, db: Any):
        self._db = db
        self._batch = db.batch()

    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        ref = self._db.collection(collection).document(doc_id)
        self._batch.set(ref, data)

    def commit(self) -> None:
        self._batch.commit()


class FirestoreDocumentClient(DocumentStoreClient):
    name = "firestore"

    def __init__(self, settings: RestoreSettings):
        try:
            from firebase_admin import firestore  # type: ignore
        except Exception as e:
            raise DependencyMissing(f"firebase-admin not available: {e}") from e
        self._db = firestore.client(app=_firebase_app(settings))

    def batch(self) -> WriteBatch:
        return FirestoreWriteBatch(self._db)


class FirebaseStorageClient(BlobStoreClient):
    name = "firebase_storage"

    def __init__(self, settings: RestoreSettings):
        try:
            from firebase_admin import storage  # type: ignore
        except Exception as e:
            raise DependencyMissing(f"firebase-admin not available: {e}") from e
        self._bucket = storage.bucket(settings.storage_bucket(), app=_firebase_app(settings))

    def upload(self, local_path: str, *, destination: str, content_type: Optional[str] = None) -> None:
        blob = self._bucket.blob(destination)
        blob.upload_from_filename(local_path, content_type=content_type)

from __future__ import annotations

import logging
import os
from typing import Callable, Dict, List, Optional

from stackrestore.core.config.settings import RestoreSettings
from stackrestore.core.logger import get_logger
from stackrestore.core.ops_log import OpsLogger
from stackrestore.core.restore.backends.base import BlobStoreClient, DocumentStoreClient
from stackrestore.core.restore.backends.process import CommandRunner, run_command
from stackrestore.core.restore.confirm import ConfirmationGate
from stackrestore.core.restore.listing import ArchiveInfo, list_archives
from stackrestore.core.restore.models import ComponentKind, Manifest
from stackrestore.core.restore.orchestrator import RestoreOrchestrator, RestoreOutcome
from stackrestore.core.restore.restorers.base import ComponentRestorer
from stackrestore.core.restore.restorers.blob_storage import BlobStorageRestorer
from stackrestore.core.restore.restorers.database import DatabaseRestorer
from stackrestore.core.restore.restorers.document_store import DocumentStoreRestorer
from stackrestore.core.restore.restorers.filesystem import AssetsRestorer, ConfigFilesRestorer
from stackrestore.core.restore.verifier import check_database_config


def _firestore_factory(settings: RestoreSettings) -> Callable[[], DocumentStoreClient]:
    def make() -> DocumentStoreClient:
        from stackrestore.core.restore.backends.firebase import FirestoreDocumentClient

        return FirestoreDocumentClient(settings)

    return make


def _storage_factory(settings: RestoreSettings) -> Callable[[], BlobStoreClient]:
    def make() -> BlobStoreClient:
        from stackrestore.core.restore.backends.firebase import FirebaseStorageClient

        return FirebaseStorageClient(settings)

    return make


class RestoreManager:
    def __init__(
        self,
        settings: RestoreSettings,
        *,
        prompt_fn: Callable[[str], str] = input,
        runner: CommandRunner = run_command,
        document_client_factory: Optional[Callable[[], DocumentStoreClient]] = None,
        blob_client_factory: Optional[Callable[[], BlobStoreClient]] = None,
        ops: Optional[OpsLogger] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.settings = settings
        self.prompt_fn = prompt_fn
        self.runner = runner
        self.document_client_factory = document_client_factory or _firestore_factory(settings)
        self.blob_client_factory = blob_client_factory or _storage_factory(settings)
        self.ops = ops or OpsLogger(path=os.path.join(settings.restore_log_dir, "restore_ops.jsonl"))
        self.log = logger or get_logger()

    def list_backups(self) -> List[ArchiveInfo]:
        return list_archives(self.settings.backup_dir)

    def build_restorers(self) -> Dict[ComponentKind, ComponentRestorer]:
        s = self.settings
        return {
            ComponentKind.DOCUMENT_STORE: DocumentStoreRestorer(self.document_client_factory, batch_size=s.restore_document_batch_size),
            ComponentKind.BLOB_STORAGE: BlobStorageRestorer(self.blob_client_factory),
            ComponentKind.DATABASE: DatabaseRestorer(s.database_url, runner=self.runner),
            ComponentKind.ASSETS: AssetsRestorer(s.restore_target_root),
            ComponentKind.CONFIG: ConfigFilesRestorer(s.restore_target_root),
        }

    def preflight(self, manifest: Manifest) -> None:
        check_database_config(manifest, self.settings.database_url, strict=self.settings.restore_strict_database_engine)

    def orchestrator(self, archive_path: str, *, auto_confirm: bool = False) -> RestoreOrchestrator:
        return RestoreOrchestrator(
            archive_path=archive_path,
            restorers=self.build_restorers(),
            staging_root=self.settings.restore_staging_dir,
            gate=ConfirmationGate(prompt_fn=self.prompt_fn, logger=self.log),
            auto_confirm=auto_confirm,
            ops=self.ops,
            logger=self.log,
            preflight=self.preflight,
        )

    def restore(self, archive_path: str, *, auto_confirm: bool = False) -> RestoreOutcome:
        return self.orchestrator(archive_path, auto_confirm=auto_confirm).run()

from __future__ import annotations

import os
from dataclasses import dataclass

from stackrestore.core.restore.models import ComponentKind


@dataclass(frozen=True)
class StagedArchive:
    root: str
    run_dir: str = ""

    @property
    def manifest(self) -> str:
        return os.path.join(self.root, "manifest.json")

    @property
    def document_dump(self) -> str:
        return os.path.join(self.root, "firestore.json")

    @property
    def storage_dir(self) -> str:
        return os.path.join(self.root, "storage")

    @property
    def storage_manifest(self) -> str:
        return os.path.join(self.storage_dir, "manifest.json")

    @property
    def database_dir(self) -> str:
        return os.path.join(self.root, "database")

    @property
    def assets_dir(self) -> str:
        return os.path.join(self.root, "assets")

    @property
    def config_dir(self) -> str:
        return os.path.join(self.root, "config")

    def component_path(self, kind: ComponentKind) -> str:
        return {
            ComponentKind.DOCUMENT_STORE: self.document_dump,
            ComponentKind.BLOB_STORAGE: self.storage_dir,
            ComponentKind.DATABASE: self.database_dir,
            ComponentKind.ASSETS: self.assets_dir,
            ComponentKind.CONFIG: self.config_dir,
        }[kind]

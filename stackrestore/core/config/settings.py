from __future__ import annotations

from functools import lru_cache
from typing import Any, Dict, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Firestore rejects batched writes above this many operations.
DOCUMENT_BATCH_LIMIT = 500


class RestoreSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Service account used for both the document store and the bucket.
    firebase_admin_project_id: str = ""
    firebase_admin_client_email: str = ""
    firebase_admin_private_key: str = ""
    # Falls back to <project>.appspot.com when unset.
    firebase_storage_bucket: Optional[str] = None

    # Optional external database; the URL scheme selects the engine.
    database_url: Optional[str] = None
    # Turn an unrecognized database scheme into a verification failure.
    restore_strict_database_engine: bool = False

    backup_dir: str = "./backups"
    restore_staging_dir: str = "temp-restore"
    restore_target_root: str = "."
    restore_log_dir: str = "logs"
    restore_document_batch_size: int = Field(default=DOCUMENT_BATCH_LIMIT, ge=1, le=DOCUMENT_BATCH_LIMIT)

    @field_validator("firebase_admin_private_key")
    @classmethod
    def _unescape_private_key(cls, v: str) -> str:
        # Keys pasted into .env files carry literal "\n" sequences.
        return (v or "").replace("\\n", "\n")

    @field_validator("database_url", "firebase_storage_bucket")
    @classmethod
    def _blank_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not str(v).strip():
            return None
        return str(v).strip()

    def firebase_credentials(self) -> Dict[str, Any]:
        return {
            "type": "service_account",
            "project_id": self.firebase_admin_project_id,
            "client_email": self.firebase_admin_client_email,
            "private_key": self.firebase_admin_private_key,
            "token_uri": "https://oauth2.googleapis.com/token",
        }

    def storage_bucket(self) -> Optional[str]:
        if self.firebase_storage_bucket:
            return self.firebase_storage_bucket
        if self.firebase_admin_project_id:
            return f"{self.firebase_admin_project_id}.appspot.com"
        return None


@lru_cache
def get_settings() -> RestoreSettings:
    return RestoreSettings()

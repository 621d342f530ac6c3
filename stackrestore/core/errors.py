from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from stackrestore.core.redaction import redact


class Severity(str, Enum):
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass
class RestoreError(Exception):
    code: str
    user_message: str
    severity: Severity = Severity.ERROR
    fatal: bool = True
    context: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.code)

    def __str__(self) -> str:
        return f"{self.code}: {self.user_message}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "user_message": self.user_message,
            "severity": self.severity.value,
            "fatal": bool(self.fatal),
            "context": redact(self.context or {}),
        }


class ConfirmationDeclined(Exception):
    """Operator answered anything but yes. Controlled exit, not a failure."""

    def __init__(self, answer: str = ""):
        super().__init__("restore declined by operator")
        self.answer = answer


# ---- Pipeline stages ----
class ExtractionError(RestoreError):
    def __init__(self, user_message: str = "Archive could not be extracted.", **ctx: Any):
        super().__init__("extraction_error", user_message, severity=Severity.CRITICAL, fatal=True, context=ctx)


class VerificationError(RestoreError):
    def __init__(self, user_message: str = "Backup verification failed.", *, missing: Optional[List[str]] = None, problems: Optional[List[str]] = None, **ctx: Any):
        self.missing = list(missing or [])
        self.problems = list(problems or [])
        if self.missing:
            ctx["missing"] = self.missing
        if self.problems:
            ctx["problems"] = self.problems
        super().__init__("verification_error", user_message, severity=Severity.CRITICAL, fatal=True, context=ctx)


class ConfirmationError(RestoreError):
    def __init__(self, user_message: str = "Could not read operator confirmation.", **ctx: Any):
        super().__init__("confirmation_error", user_message, severity=Severity.ERROR, fatal=True, context=ctx)


class StateTransitionError(RestoreError):
    def __init__(self, user_message: str = "Internal state error.", **ctx: Any):
        super().__init__("state_transition_error", user_message, severity=Severity.ERROR, fatal=True, context=ctx)


class DependencyMissing(RestoreError):
    def __init__(self, user_message: str = "A required client library is not installed.", **ctx: Any):
        super().__init__("dependency_missing", user_message, severity=Severity.ERROR, fatal=True, context=ctx)


# ---- Component restorers ----
class DocumentStoreError(RestoreError):
    def __init__(self, user_message: str = "Document store restore failed.", **ctx: Any):
        super().__init__("document_store_error", user_message, severity=Severity.ERROR, fatal=True, context=ctx)


class BlobStorageError(RestoreError):
    def __init__(self, user_message: str = "Blob storage restore failed.", **ctx: Any):
        super().__init__("blob_storage_error", user_message, severity=Severity.ERROR, fatal=True, context=ctx)


class BlobObjectError(RestoreError):
    def __init__(self, user_message: str = "Object upload failed.", *, name: str = "", **ctx: Any):
        self.name = name
        super().__init__("blob_object_error", user_message, severity=Severity.WARN, fatal=False, context={"name": name, **ctx})


class DatabaseEngineError(RestoreError):
    def __init__(self, user_message: str = "Database engine not configured or not supported.", *, engine: str = "", **ctx: Any):
        self.engine = engine
        super().__init__("database_engine_error", user_message, severity=Severity.WARN, fatal=False, context={"engine": engine, **ctx})


class DatabaseRestoreError(RestoreError):
    def __init__(self, user_message: str = "Database restore failed.", **ctx: Any):
        super().__init__("database_restore_error", user_message, severity=Severity.ERROR, fatal=True, context=ctx)


class AssetError(RestoreError):
    def __init__(self, user_message: str = "Static asset restore failed.", **ctx: Any):
        super().__init__("asset_error", user_message, severity=Severity.ERROR, fatal=True, context=ctx)


class ConfigError(RestoreError):
    def __init__(self, user_message: str = "Configuration file restore failed.", **ctx: Any):
        super().__init__("config_error", user_message, severity=Severity.ERROR, fatal=True, context=ctx)


class CleanupError(RestoreError):
    def __init__(self, user_message: str = "Staging cleanup failed.", **ctx: Any):
        super().__init__("cleanup_error", user_message, severity=Severity.WARN, fatal=False, context=ctx)

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ComponentKind(str, Enum):
    DOCUMENT_STORE = "documentStore"
    BLOB_STORAGE = "blobStorage"
    DATABASE = "database"
    ASSETS = "assets"
    CONFIG = "config"


COMPONENT_ORDER: Tuple[ComponentKind, ...] = (
    ComponentKind.DOCUMENT_STORE,
    ComponentKind.BLOB_STORAGE,
    ComponentKind.DATABASE,
    ComponentKind.ASSETS,
    ComponentKind.CONFIG,
)

# Names written by older backup runs.
LEGACY_COMPONENT_ALIASES: Dict[str, str] = {
    "firestore": ComponentKind.DOCUMENT_STORE.value,
    "storage": ComponentKind.BLOB_STORAGE.value,
}


class ManifestMetadata(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True, populate_by_name=True)

    file_count: int = Field(alias="fileCount", ge=0)
    size: int = Field(ge=0)
    environment: Optional[str] = None
    app_version: Optional[str] = Field(default=None, alias="appVersion")


class Manifest(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)

    type: str
    timestamp: str
    version: Optional[str] = None
    components: Dict[str, bool]
    metadata: ManifestMetadata

    @field_validator("components", mode="before")
    @classmethod
    def _normalize_components(cls, v: Any) -> Any:
        if not isinstance(v, dict):
            return v
        out: Dict[str, Any] = {}
        for k, flag in v.items():
            name = LEGACY_COMPONENT_ALIASES.get(str(k), str(k))
            if name in out:
                # canonical and legacy key both present: either one flags presence
                out[name] = bool(out[name]) or bool(flag)
            else:
                out[name] = flag
        return out

    def is_enabled(self, kind: ComponentKind) -> bool:
        return bool(self.components.get(kind.value, False))

    def enabled_components(self) -> List[ComponentKind]:
        return [k for k in COMPONENT_ORDER if self.is_enabled(k)]

    def unrestorable_components(self) -> List[str]:
        """Flagged components that have no restorer (e.g. ``source``)."""
        known = {k.value for k in ComponentKind}
        return sorted(k for k, flag in self.components.items() if flag and k not in known)


class DocumentRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1)
    data: Dict[str, Any] = Field(default_factory=dict)


class BlobEntry(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: str = Field(min_length=1)
    content_type: Optional[str] = Field(default=None, alias="contentType")

    @property
    def flattened_name(self) -> str:
        return self.name.replace("/", "_")


@dataclass
class RestoreResult:
    kind: ComponentKind
    status: str = "ok"  # ok|skipped|partial
    items_total: int = 0
    items_ok: int = 0
    batches: int = 0
    failures: List[Dict[str, Any]] = field(default_factory=list)
    detail: str = ""

    @property
    def items_failed(self) -> int:
        return len(self.failures)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "status": self.status,
            "items_total": self.items_total,
            "items_ok": self.items_ok,
            "items_failed": self.items_failed,
            "batches": self.batches,
            "failures": list(self.failures),
            "detail": self.detail,
        }

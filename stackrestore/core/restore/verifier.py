from __future__ import annotations

import json
import os
from typing import List, Optional

from pydantic import ValidationError

from stackrestore.core.errors import VerificationError
from stackrestore.core.logger import get_logger
from stackrestore.core.redaction import redact_url
from stackrestore.core.restore.listing import format_bytes
from stackrestore.core.restore.models import COMPONENT_ORDER, ComponentKind, Manifest
from stackrestore.core.restore.paths import StagedArchive
from stackrestore.core.restore.restorers.database import UNKNOWN_ENGINE, detect_engine


def load_manifest(path: str) -> Manifest:
    if not os.path.isfile(path):
        raise VerificationError("Backup manifest is missing.", missing=["manifest.json"])
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise VerificationError("Backup manifest is not valid JSON.", problems=[f"invalid manifest.json: {e}"]) from e
    if not isinstance(raw, dict):
        raise VerificationError("Backup manifest must be a JSON object.", problems=["manifest.json is not an object"])
    try:
        return Manifest.model_validate(raw)
    except ValidationError as e:
        problems = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
        raise VerificationError("Backup manifest is incomplete.", problems=problems) from e


def missing_components(staged: StagedArchive, manifest: Manifest) -> List[ComponentKind]:
    return [k for k in COMPONENT_ORDER if manifest.is_enabled(k) and not os.path.exists(staged.component_path(k))]


def verify_staged(staged: StagedArchive) -> Manifest:
    log = get_logger("verify")
    man = load_manifest(staged.manifest)

    log.info(f"  backup type: {man.type}")
    log.info(f"  backup date: {man.timestamp}")
    log.info(f"  components: {', '.join(k.value for k in man.enabled_components()) or '(none)'}")
    log.info(f"  files: {man.metadata.file_count}")
    log.info(f"  size: {format_bytes(man.metadata.size)}")
    for name in man.unrestorable_components():
        log.warning(f"  component '{name}' has no restorer and will not be restored")

    missing = missing_components(staged, man)
    for k in man.enabled_components():
        if k not in missing:
            log.info(f"    ok: {k.value}")
    if missing:
        names = [k.value for k in missing]
        for n in names:
            log.error(f"    missing: {n}")
        raise VerificationError(f"Components missing from backup: {', '.join(names)}", missing=names)
    return man


def check_database_config(manifest: Manifest, database_url: Optional[str], *, strict: bool = False) -> None:
    """
    Preflight for the external database component, run before anything is
    touched. An unknown engine is a warning unless ``strict`` is set.
    """
    if not manifest.is_enabled(ComponentKind.DATABASE) or not database_url:
        return
    engine = detect_engine(database_url)
    if engine != UNKNOWN_ENGINE:
        return
    shown = redact_url(database_url)
    if strict:
        raise VerificationError("Unsupported database engine in DATABASE_URL.", problems=[f"unsupported scheme: {shown}"])
    get_logger("verify").warning(f"  database URL scheme is not supported, database restore will be skipped: {shown}")

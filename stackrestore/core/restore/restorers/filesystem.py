from __future__ import annotations

import os
import shutil
import time
from typing import Callable, Optional, Tuple

from stackrestore.core.errors import AssetError, ConfigError, RestoreError
from stackrestore.core.logger import get_logger
from stackrestore.core.restore.models import ComponentKind, RestoreResult
from stackrestore.core.restore.paths import StagedArchive
from stackrestore.core.restore.restorers.base import ComponentRestorer

ASSET_DIRS: Tuple[str, ...] = ("public", "images", "documents", "uploads")
# Secrets (.env*) are never part of a backup and never restored.
CONFIG_FILES: Tuple[str, ...] = ("next.config.js", "tailwind.config.js", "firebase.json", "vercel.json")


def snapshot_name(path: str, *, now_ms: Optional[int] = None) -> str:
    ts = int(now_ms if now_ms is not None else time.time() * 1000)
    candidate = f"{path}.bak.{ts}"
    n = 1
    while os.path.lexists(candidate):
        candidate = f"{path}.bak.{ts}.{n}"
        n += 1
    return candidate


class _FilesystemRestorer(ComponentRestorer):
    """
    Mirrors staged entries onto ``target_root``. A live counterpart is moved
    aside to ``<name>.bak.<ms>`` first, never deleted.
    """

    continues_on_item_failure = False
    error_cls: Callable[..., RestoreError]

    def __init__(self, target_root: str, *, logger=None):
        super().__init__(logger or get_logger(self.kind.value))
        self.target_root = target_root

    def _snapshot(self, live: str) -> Optional[str]:
        if not os.path.lexists(live):
            return None
        dst = snapshot_name(live)
        try:
            os.replace(live, dst)
        except OSError as e:
            # Keep going: the copy below overlays the live entry.
            self.log.warning(f"    could not snapshot {live}: {e}")
            return None
        self.log.info(f"    snapshot: {os.path.basename(dst)}")
        return dst

    def _restore_entry(self, result: RestoreResult, staged_path: str, rel: str) -> None:
        live = os.path.join(self.target_root, rel)
        result.items_total += 1

        def copy() -> None:
            self._snapshot(live)
            parent = os.path.dirname(live)
            if parent:
                os.makedirs(parent, exist_ok=True)
            if os.path.isdir(staged_path):
                shutil.copytree(staged_path, live, dirs_exist_ok=True)
            else:
                shutil.copy2(staged_path, live)

        self._run_item(result, rel, copy, wrap=lambda e: self.error_cls(f"Failed to restore {rel}.", path=rel, reason=str(e)))
        result.items_ok += 1
        self.log.info(f"    restored: {rel}")


class AssetsRestorer(_FilesystemRestorer):
    kind = ComponentKind.ASSETS
    error_cls = AssetError

    def restore(self, staged: StagedArchive) -> RestoreResult:
        result = RestoreResult(kind=self.kind)
        for d in ASSET_DIRS:
            src = os.path.join(staged.assets_dir, d)
            if os.path.isdir(src):
                self._restore_entry(result, src, d)
        result.detail = f"{result.items_ok} asset directories restored"
        return result


class ConfigFilesRestorer(_FilesystemRestorer):
    kind = ComponentKind.CONFIG
    error_cls = ConfigError

    def restore(self, staged: StagedArchive) -> RestoreResult:
        result = RestoreResult(kind=self.kind)
        for fn in CONFIG_FILES:
            src = os.path.join(staged.config_dir, fn)
            if os.path.isfile(src):
                self._restore_entry(result, src, fn)
        result.detail = f"{result.items_ok} configuration files restored"
        return result

from __future__ import annotations

import logging
import os

import pytest

from stackrestore.core.config.settings import RestoreSettings, get_settings
from stackrestore.core.logger import LOGGER_NAME


@pytest.fixture(autouse=True)
def _isolate_logging():
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for h in list(logger.handlers):
        logger.removeHandler(h)
        h.close()
    logger.propagate = True


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch, tmp_path):
    for key in list(os.environ):
        if key.startswith(("FIREBASE_", "RESTORE_")) or key in ("DATABASE_URL", "BACKUP_DIR"):
            monkeypatch.delenv(key, raising=False)
    # keep a developer's .env out of the settings
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def workspace(tmp_path):
    """
    Live project root, staging dir, backup dir and log dir under tmp_path.
    """
    live = tmp_path / "live"
    live.mkdir()
    return {
        "live": str(live),
        "staging": str(tmp_path / "temp-restore"),
        "backups": str(tmp_path / "backups"),
        "logs": str(tmp_path / "logs"),
    }


@pytest.fixture
def settings(workspace):
    return RestoreSettings(
        backup_dir=workspace["backups"],
        restore_staging_dir=workspace["staging"],
        restore_target_root=workspace["live"],
        restore_log_dir=workspace["logs"],
    )

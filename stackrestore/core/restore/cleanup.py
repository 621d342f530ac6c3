from __future__ import annotations

import logging
import os
import shutil
from typing import Optional

from stackrestore.core.errors import CleanupError
from stackrestore.core.logger import get_logger


def cleanup_staging(run_dir: str, *, logger: Optional[logging.Logger] = None) -> bool:
    """
    Remove one run's staging directory, then its parent staging root if that
    is left empty. Other entries under the staging root are never touched.
    Never raises: a failure is logged and reported as False.
    """
    log = logger or get_logger("cleanup")
    staging_root = os.path.dirname(os.path.normpath(run_dir))
    try:
        if os.path.lexists(run_dir):
            shutil.rmtree(run_dir)
        if staging_root and os.path.isdir(staging_root) and not os.listdir(staging_root):
            os.rmdir(staging_root)
    except OSError as e:
        err = CleanupError(path=run_dir, reason=str(e))
        log.error(f"  cleanup failed: {err.user_message} ({e})")
        return False
    return True

from __future__ import annotations

import logging
from typing import Callable, Optional

from stackrestore.core.errors import ConfirmationDeclined, ConfirmationError
from stackrestore.core.logger import get_logger
from stackrestore.core.restore.models import Manifest

AFFIRMATIVE = {"yes", "y"}
PROMPT = "\nDo you want to proceed with the restore? (yes/no): "


class ConfirmationGate:
    """Shows the restore plan and blocks until the operator answers."""

    def __init__(self, prompt_fn: Callable[[str], str] = input, logger: Optional[logging.Logger] = None):
        self.prompt_fn = prompt_fn
        self.log = logger or get_logger("confirm")

    def confirm(self, manifest: Manifest, *, auto_confirm: bool = False) -> None:
        self.log.warning("\nWARNING: This will overwrite existing data!")
        self.log.info("Restore will include:")
        for k in manifest.enabled_components():
            self.log.info(f"  - {k.value}")

        if auto_confirm:
            self.log.info("Confirmation skipped (auto-confirm).")
            return

        try:
            answer = self.prompt_fn(PROMPT)
        except (EOFError, KeyboardInterrupt) as e:
            raise ConfirmationError("No confirmation received from the terminal.", reason=type(e).__name__) from e

        if str(answer or "").strip().lower() not in AFFIRMATIVE:
            raise ConfirmationDeclined(str(answer or ""))
        self.log.info("Restore confirmed, proceeding...")

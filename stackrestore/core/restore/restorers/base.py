from __future__ import annotations

import logging
from typing import Callable

from stackrestore.core.errors import RestoreError
from stackrestore.core.restore.models import ComponentKind, RestoreResult
from stackrestore.core.restore.paths import StagedArchive


class ComponentRestorer:
    """
    Restores one archive component onto the live environment.

    ``continues_on_item_failure`` is the component's failure policy: when True a
    failed item (one object, one file) is recorded on the result and the
    restorer moves on; when False the first failed item aborts the component
    and, through the orchestrator, the whole run.
    """

    kind: ComponentKind
    continues_on_item_failure: bool = False

    def __init__(self, logger: logging.Logger):
        self.log = logger

    def restore(self, staged: StagedArchive) -> RestoreResult:
        raise NotImplementedError

    def _run_item(self, result: RestoreResult, item: str, fn: Callable[[], None], *, wrap: Callable[[Exception], RestoreError]) -> bool:
        try:
            fn()
        except Exception as e:  # noqa: BLE001
            err = e if isinstance(e, RestoreError) else wrap(e)
            if not self.continues_on_item_failure or (err is e and err.fatal):
                if err is e:
                    raise
                raise err from e
            result.failures.append(err.to_dict())
            self.log.warning(f"    failed: {item} - {e}")
            return False
        return True

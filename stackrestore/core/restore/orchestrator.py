from __future__ import annotations

import logging
import os
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, TypeVar

from stackrestore.core.errors import ConfirmationDeclined, RestoreError, StateTransitionError
from stackrestore.core.logger import get_logger
from stackrestore.core.ops_log import OpsLogger
from stackrestore.core.restore.cleanup import cleanup_staging
from stackrestore.core.restore.confirm import ConfirmationGate
from stackrestore.core.restore.extractor import extract_archive
from stackrestore.core.restore.models import COMPONENT_ORDER, ComponentKind, Manifest, RestoreResult
from stackrestore.core.restore.paths import StagedArchive
from stackrestore.core.restore.restorers.base import ComponentRestorer
from stackrestore.core.restore.verifier import verify_staged

T = TypeVar("T")


class RestoreState(str, Enum):
    IDLE = "IDLE"
    EXTRACTED = "EXTRACTED"
    VERIFIED = "VERIFIED"
    CONFIRMED = "CONFIRMED"
    RESTORING = "RESTORING"
    DONE = "DONE"
    DECLINED = "DECLINED"
    FAILED = "FAILED"
    CLEANED = "CLEANED"


_TRANSITIONS: Dict[RestoreState, frozenset] = {
    RestoreState.IDLE: frozenset({RestoreState.EXTRACTED, RestoreState.FAILED}),
    RestoreState.EXTRACTED: frozenset({RestoreState.VERIFIED, RestoreState.FAILED}),
    RestoreState.VERIFIED: frozenset({RestoreState.CONFIRMED, RestoreState.DECLINED, RestoreState.FAILED}),
    RestoreState.CONFIRMED: frozenset({RestoreState.RESTORING, RestoreState.DONE, RestoreState.FAILED}),
    RestoreState.RESTORING: frozenset({RestoreState.RESTORING, RestoreState.DONE, RestoreState.FAILED}),
    RestoreState.DONE: frozenset({RestoreState.CLEANED}),
    RestoreState.DECLINED: frozenset({RestoreState.CLEANED}),
    RestoreState.FAILED: frozenset({RestoreState.CLEANED}),
    RestoreState.CLEANED: frozenset(),
}


@dataclass(frozen=True)
class ComponentStep:
    kind: ComponentKind
    predicate: Callable[[Manifest], bool]
    restorer: Optional[ComponentRestorer]


@dataclass
class RestoreOutcome:
    exit_code: int
    state: RestoreState
    trace_id: str
    results: List[RestoreResult] = field(default_factory=list)
    error: Optional[Dict[str, Any]] = None
    declined: bool = False
    failed_stage: Optional[str] = None
    history: List[RestoreState] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class RestoreOrchestrator:
    """
    Sequences one restore run: extract, verify, confirm, restore each enabled
    component in fixed order, then clean up the staging directory on every
    exit path.
    """

    def __init__(
        self,
        *,
        archive_path: str,
        restorers: Mapping[ComponentKind, ComponentRestorer],
        staging_root: str,
        gate: ConfirmationGate,
        auto_confirm: bool = False,
        ops: Optional[OpsLogger] = None,
        logger: Optional[logging.Logger] = None,
        preflight: Optional[Callable[[Manifest], None]] = None,
        trace_id: Optional[str] = None,
    ):
        self.archive_path = archive_path
        self.restorers = dict(restorers)
        self.staging_root = staging_root
        self.gate = gate
        self.auto_confirm = bool(auto_confirm)
        self.ops = ops
        self.log = logger or get_logger("orchestrator")
        self.preflight = preflight
        self.trace_id = trace_id or uuid.uuid4().hex
        self.run_dir = os.path.join(staging_root, self.trace_id)

        self.state = RestoreState.IDLE
        self.history: List[RestoreState] = [RestoreState.IDLE]
        self.staged: Optional[StagedArchive] = None
        self.manifest: Optional[Manifest] = None
        self.results: List[RestoreResult] = []
        self.current_component: Optional[ComponentKind] = None
        self.failed_stage: Optional[str] = None

    # ---------- plan ----------
    def plan(self) -> List[ComponentStep]:
        return [
            ComponentStep(kind=k, predicate=lambda m, k=k: m.is_enabled(k), restorer=self.restorers.get(k))
            for k in COMPONENT_ORDER
        ]

    # ---------- transitions ----------
    def extract(self) -> StagedArchive:
        self._require(RestoreState.IDLE)
        self.staged = self._stage(
            "extract",
            lambda: extract_archive(self.archive_path, staging_root=self.staging_root, run_id=self.trace_id),
            details={"archive": os.path.basename(self.archive_path)},
        )
        self._transition(RestoreState.EXTRACTED)
        return self.staged

    def verify(self) -> Manifest:
        self._require(RestoreState.EXTRACTED)
        if self.staged is None:
            raise StateTransitionError("No staged archive to verify.", state=self.state.value)

        def run() -> Manifest:
            man = verify_staged(self.staged)
            if self.preflight is not None:
                self.preflight(man)
            return man

        self.manifest = self._stage("verify", run)
        self._transition(RestoreState.VERIFIED)
        return self.manifest

    def confirm(self) -> None:
        self._require(RestoreState.VERIFIED)
        if self.manifest is None:
            raise StateTransitionError("No verified manifest to confirm.", state=self.state.value)
        try:
            self._stage("confirm", lambda: self.gate.confirm(self.manifest, auto_confirm=self.auto_confirm))
        except ConfirmationDeclined:
            self._transition(RestoreState.DECLINED)
            raise
        self._transition(RestoreState.CONFIRMED)

    def restore_components(self) -> List[RestoreResult]:
        self._require(RestoreState.CONFIRMED)
        if self.manifest is None or self.staged is None:
            raise StateTransitionError("No verified archive to restore from.", state=self.state.value)
        for step in self.plan():
            if not step.predicate(self.manifest):
                self.log.info(f"[restore:{step.kind.value}] skipped (not in backup)")
                continue
            if step.restorer is None:
                self.failed_stage = f"restore:{step.kind.value}"
                raise RestoreError("restorer_missing", f"No restorer registered for {step.kind.value}.", context={"component": step.kind.value})
            self.current_component = step.kind
            self._transition(RestoreState.RESTORING)
            restorer = step.restorer
            result = self._stage(
                f"restore:{step.kind.value}",
                lambda: restorer.restore(self.staged),
                details={"continues_on_item_failure": restorer.continues_on_item_failure},
            )
            self.results.append(result)
        self.current_component = None
        self._transition(RestoreState.DONE)
        return self.results

    def cleanup(self) -> bool:
        if self.state == RestoreState.CLEANED:
            return True
        if self.state not in (RestoreState.DONE, RestoreState.DECLINED, RestoreState.FAILED):
            self._transition(RestoreState.FAILED)
        ok = self._stage("cleanup", lambda: cleanup_staging(self.run_dir, logger=self.log))
        self._transition(RestoreState.CLEANED)
        return ok

    def run(self) -> RestoreOutcome:
        self.log.info("Starting restore process...")
        self.log.info(f"Backup file: {self.archive_path}")
        error: Optional[Dict[str, Any]] = None
        declined = False
        exit_code = 0
        try:
            self.extract()
            self.verify()
            self.confirm()
            self.restore_components()
        except ConfirmationDeclined:
            declined = True
            self.log.info("Restore cancelled by user.")
        except RestoreError as e:
            error = e.to_dict()
            exit_code = 1
            self._fail()
        except Exception as e:  # noqa: BLE001
            self.log.exception(f"Unexpected error during restore: {e}")
            error = {"code": "unexpected_error", "user_message": str(e), "severity": "CRITICAL", "fatal": True, "context": {"type": type(e).__name__}}
            exit_code = 1
            self._fail()
        finally:
            self.cleanup()

        if exit_code == 0 and not declined:
            self.log.info("Restore completed successfully!")
        elif exit_code != 0:
            self.log.error(f"Restore failed at stage '{self.failed_stage or 'unknown'}': {(error or {}).get('user_message', 'unknown error')}")
        return RestoreOutcome(
            exit_code=exit_code,
            state=self.state,
            trace_id=self.trace_id,
            results=list(self.results),
            error=error,
            declined=declined,
            failed_stage=self.failed_stage,
            history=list(self.history),
        )

    # ---------- helpers ----------
    def _require(self, state: RestoreState) -> None:
        if self.state != state:
            raise StateTransitionError(f"Expected state {state.value}, found {self.state.value}.", state=self.state.value)

    def _transition(self, to: RestoreState) -> None:
        if to not in _TRANSITIONS[self.state]:
            raise StateTransitionError(f"Illegal transition {self.state.value} -> {to.value}.", state=self.state.value, to=to.value)
        self.state = to
        self.history.append(to)

    def _fail(self) -> None:
        if self.state not in (RestoreState.FAILED, RestoreState.CLEANED):
            self._transition(RestoreState.FAILED)

    def _stage(self, name: str, fn: Callable[[], T], *, details: Optional[Dict[str, Any]] = None) -> T:
        t0 = time.time()
        self.log.info(f"[{name}] starting")
        self._ops("stage_start", name, details)
        try:
            out = fn()
        except ConfirmationDeclined:
            self.log.info(f"[{name}] declined")
            self._ops("stage_declined", name)
            raise
        except RestoreError as e:
            self.failed_stage = name
            self.log.error(f"[{name}] FAILED: {e.user_message}")
            self._ops("stage_failed", name, e.to_dict())
            raise
        except Exception as e:  # noqa: BLE001
            self.failed_stage = name
            self.log.error(f"[{name}] FAILED: {type(e).__name__}: {e}")
            self._ops("stage_failed", name, {"type": type(e).__name__, "error": str(e)})
            raise
        dt = time.time() - t0
        if isinstance(out, RestoreResult):
            summary = f"{out.status}, {out.detail}"
        else:
            summary = "completed with errors" if out is False else "ok"
        self.log.info(f"[{name}] done: {summary} ({dt:.2f}s)")
        self._ops("stage_ok", name, {"seconds": round(dt, 3), **(out.to_dict() if isinstance(out, RestoreResult) else {})})
        return out

    def _ops(self, event: str, outcome: str, details: Optional[Dict[str, Any]] = None) -> None:
        if self.ops is None:
            return
        try:
            self.ops.log(trace_id=self.trace_id, event=event, outcome=outcome, details=details or {})
        except OSError as e:
            self.log.warning(f"ops log write failed: {e}")

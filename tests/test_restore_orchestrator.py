from __future__ import annotations

import json
import os
import shutil

import pytest

from stackrestore.core.errors import StateTransitionError
from stackrestore.core.ops_log import OpsLogger
from stackrestore.core.restore.api import RestoreManager
from stackrestore.core.restore.confirm import ConfirmationGate
from stackrestore.core.restore.models import ComponentKind
from stackrestore.core.restore.orchestrator import RestoreOrchestrator, RestoreState
from stackrestore.core.restore.restorers.blob_storage import BlobStorageRestorer
from stackrestore.core.restore.restorers.database import DatabaseRestorer
from stackrestore.core.restore.restorers.document_store import DocumentStoreRestorer
from stackrestore.core.restore.restorers.filesystem import AssetsRestorer, ConfigFilesRestorer
from tests.helpers.archives import build_archive
from tests.helpers.fakes import FakeBlobStore, FakeDocumentStore, RecordingRunner, ScriptedPrompt


def _orchestrator(workspace, archive, *, answers=("yes",), store=None, blobs=None, runner=None, database_url=None, auto_confirm=False, ops=None):
    store = store or FakeDocumentStore()
    blobs = blobs or FakeBlobStore()
    runner = runner or RecordingRunner()
    restorers = {
        ComponentKind.DOCUMENT_STORE: DocumentStoreRestorer(lambda: store),
        ComponentKind.BLOB_STORAGE: BlobStorageRestorer(lambda: blobs),
        ComponentKind.DATABASE: DatabaseRestorer(database_url, runner=runner),
        ComponentKind.ASSETS: AssetsRestorer(workspace["live"]),
        ComponentKind.CONFIG: ConfigFilesRestorer(workspace["live"]),
    }
    prompt = ScriptedPrompt(*answers)
    orch = RestoreOrchestrator(
        archive_path=archive,
        restorers=restorers,
        staging_root=workspace["staging"],
        gate=ConfirmationGate(prompt_fn=prompt),
        auto_confirm=auto_confirm,
        ops=ops,
        trace_id="t-1",
    )
    return orch, prompt


def _example_archive(tmp_path, **extra):
    tree = dict(
        components={"documentStore": True, "blobStorage": False, "database": False, "assets": True, "config": False},
        documents={"users": [{"id": f"u{i}", "data": {"i": i}} for i in range(3)]},
        assets={"public": {"logo.svg": "<svg/>"}},
    )
    tree.update(extra)
    return build_archive(tmp_path, **tree)


def test_full_run_restores_enabled_components_in_order(tmp_path, workspace):
    store = FakeDocumentStore()
    orch, prompt = _orchestrator(workspace, _example_archive(tmp_path), store=store)
    out = orch.run()

    assert out.exit_code == 0
    assert out.ok is True
    assert [r.kind for r in out.results] == [ComponentKind.DOCUMENT_STORE, ComponentKind.ASSETS]
    assert store.commits == [3]
    assert os.path.isfile(os.path.join(workspace["live"], "public", "logo.svg"))
    assert out.state == RestoreState.CLEANED
    assert out.history == [
        RestoreState.IDLE,
        RestoreState.EXTRACTED,
        RestoreState.VERIFIED,
        RestoreState.CONFIRMED,
        RestoreState.RESTORING,
        RestoreState.RESTORING,
        RestoreState.DONE,
        RestoreState.CLEANED,
    ]
    assert len(prompt.prompts) == 1
    assert not os.path.exists(workspace["staging"])


def test_declined_confirmation_touches_nothing(tmp_path, workspace):
    store = FakeDocumentStore()
    blobs = FakeBlobStore()
    runner = RecordingRunner()
    orch, _ = _orchestrator(workspace, _example_archive(tmp_path), answers=("no",), store=store, blobs=blobs, runner=runner)
    out = orch.run()

    assert out.exit_code == 0
    assert out.declined is True
    assert out.results == []
    assert store.batches_opened == 0
    assert blobs.attempts == []
    assert runner.calls == []
    assert os.listdir(workspace["live"]) == []
    assert RestoreState.DECLINED in out.history
    assert out.state == RestoreState.CLEANED
    assert not os.path.exists(workspace["staging"])


@pytest.mark.parametrize("answer", ["Y", " yes ", "YES"])
def test_affirmative_answers_are_case_insensitive(tmp_path, workspace, answer):
    orch, _ = _orchestrator(workspace, _example_archive(tmp_path), answers=(answer,))
    assert orch.run().declined is False


def test_closed_terminal_is_a_confirmation_error(tmp_path, workspace):
    store = FakeDocumentStore()
    orch, _ = _orchestrator(workspace, _example_archive(tmp_path), answers=(EOFError(),), store=store)
    out = orch.run()
    assert out.exit_code == 1
    assert out.error["code"] == "confirmation_error"
    assert out.failed_stage == "confirm"
    assert store.batches_opened == 0


def test_auto_confirm_skips_prompt(tmp_path, workspace):
    orch, prompt = _orchestrator(workspace, _example_archive(tmp_path), answers=(), auto_confirm=True)
    out = orch.run()
    assert out.exit_code == 0
    assert prompt.prompts == []


def test_verification_failure_stops_before_any_restorer(tmp_path, workspace):
    store = FakeDocumentStore()
    arc = build_archive(tmp_path, components={"documentStore": True, "assets": True}, assets={"public": {"a": "a"}})
    orch, prompt = _orchestrator(workspace, arc, store=store)
    out = orch.run()
    assert out.exit_code == 1
    assert out.failed_stage == "verify"
    assert out.error["context"]["missing"] == ["documentStore"]
    assert prompt.prompts == []
    assert os.listdir(workspace["live"]) == []
    assert not os.path.exists(workspace["staging"])


def test_extraction_failure_exits_nonzero(tmp_path, workspace):
    orch, _ = _orchestrator(workspace, str(tmp_path / "missing.tar.gz"))
    out = orch.run()
    assert out.exit_code == 1
    assert out.failed_stage == "extract"
    assert out.state == RestoreState.CLEANED


def test_database_failure_is_fatal_and_later_components_do_not_run(tmp_path, workspace):
    arc = build_archive(
        tmp_path,
        components={"documentStore": True, "database": True, "assets": True},
        documents={"users": [{"id": "u1", "data": {}}]},
        database={"postgres_dump.sql": "SELECT 1;"},
        assets={"public": {"a": "a"}},
    )
    store = FakeDocumentStore()
    runner = RecordingRunner(returncode=1, stderr="ERROR: relation exists")
    orch, _ = _orchestrator(workspace, arc, store=store, runner=runner, database_url="postgresql://u:p@h/db")
    out = orch.run()

    assert out.exit_code == 1
    assert out.failed_stage == "restore:database"
    assert out.error["code"] == "database_restore_error"
    # earlier component stays applied, later one never starts
    assert store.commits == [1]
    assert os.listdir(workspace["live"]) == []
    assert RestoreState.FAILED in out.history
    assert out.state == RestoreState.CLEANED
    assert not os.path.exists(workspace["staging"])


def test_partial_blob_restore_still_succeeds(tmp_path, workspace):
    arc = build_archive(tmp_path, components={"blobStorage": True}, blobs={"a.txt": b"a", "b/c.txt": b"c"})
    blobs = FakeBlobStore(fail_on={"a.txt"})
    orch, _ = _orchestrator(workspace, arc, blobs=blobs)
    out = orch.run()
    assert out.exit_code == 0
    assert out.results[0].status == "partial"
    assert list(blobs.uploads) == ["b/c.txt"]


def test_cleanup_failure_keeps_exit_code(tmp_path, workspace, monkeypatch):
    orch, _ = _orchestrator(workspace, _example_archive(tmp_path))

    def broken_rmtree(*a, **kw):
        raise OSError("device busy")

    monkeypatch.setattr(shutil, "rmtree", broken_rmtree)
    out = orch.run()
    monkeypatch.undo()
    assert out.exit_code == 0
    assert out.state == RestoreState.CLEANED


def test_unknown_database_scheme_is_skipped_by_default(tmp_path, workspace):
    arc = build_archive(tmp_path, components={"database": True}, database={"dump.rdb": "x"})
    runner = RecordingRunner()
    orch, _ = _orchestrator(workspace, arc, runner=runner, database_url="redis://localhost:6379")
    out = orch.run()
    assert out.exit_code == 0
    assert out.results[0].status == "skipped"
    assert runner.calls == []


def test_missing_restorer_fails_the_run(tmp_path, workspace):
    orch, _ = _orchestrator(workspace, _example_archive(tmp_path))
    del orch.restorers[ComponentKind.ASSETS]
    out = orch.run()
    assert out.exit_code == 1
    assert out.error["code"] == "restorer_missing"
    assert out.failed_stage == "restore:assets"


def test_out_of_order_transition_is_rejected(tmp_path, workspace):
    orch, _ = _orchestrator(workspace, _example_archive(tmp_path))
    with pytest.raises(StateTransitionError):
        orch.confirm()
    with pytest.raises(StateTransitionError):
        orch.restore_components()
    assert orch.state == RestoreState.IDLE


def test_stage_events_are_written_to_ops_log(tmp_path, workspace):
    ops = OpsLogger(path=os.path.join(workspace["logs"], "restore_ops.jsonl"))
    orch, _ = _orchestrator(workspace, _example_archive(tmp_path), ops=ops)
    orch.run()
    with open(ops.path, "r", encoding="utf-8") as f:
        events = [json.loads(line) for line in f]
    ok = [e["outcome"] for e in events if e["event"] == "stage_ok"]
    assert ok == ["extract", "verify", "confirm", "restore:documentStore", "restore:assets", "cleanup"]
    assert {e["trace_id"] for e in events} == {"t-1"}


def test_manager_strict_engine_fails_before_mutation(tmp_path, workspace):
    from stackrestore.core.config.settings import RestoreSettings

    s = RestoreSettings(
        backup_dir=workspace["backups"],
        restore_staging_dir=workspace["staging"],
        restore_target_root=workspace["live"],
        restore_log_dir=workspace["logs"],
        database_url="redis://localhost:6379",
        restore_strict_database_engine=True,
    )
    store = FakeDocumentStore()
    runner = RecordingRunner()
    arc = build_archive(
        tmp_path,
        components={"documentStore": True, "database": True},
        documents={"users": [{"id": "u1", "data": {}}]},
        database={"dump.rdb": "x"},
    )
    prompt = ScriptedPrompt("yes")
    mgr = RestoreManager(s, prompt_fn=prompt, runner=runner, document_client_factory=lambda: store)
    out = mgr.restore(arc)
    assert out.exit_code == 1
    assert out.failed_stage == "verify"
    assert prompt.prompts == []
    assert store.batches_opened == 0
    assert runner.calls == []


def test_manager_wires_settings_into_restorers(settings):
    mgr = RestoreManager(settings, document_client_factory=FakeDocumentStore, blob_client_factory=FakeBlobStore)
    restorers = mgr.build_restorers()
    assert list(restorers) == [
        ComponentKind.DOCUMENT_STORE,
        ComponentKind.BLOB_STORAGE,
        ComponentKind.DATABASE,
        ComponentKind.ASSETS,
        ComponentKind.CONFIG,
    ]
    assert restorers[ComponentKind.DOCUMENT_STORE].batch_size == 500
    assert restorers[ComponentKind.ASSETS].target_root == settings.restore_target_root
    assert restorers[ComponentKind.DATABASE].database_url is None


def test_shared_staging_dir_keeps_unrelated_entries(tmp_path, workspace):
    os.makedirs(os.path.join(workspace["staging"], "previous-run"))
    orch, _ = _orchestrator(workspace, _example_archive(tmp_path))
    out = orch.run()
    assert out.exit_code == 0
    assert os.listdir(workspace["staging"]) == ["previous-run"]


def test_verify_without_staged_archive_is_rejected(tmp_path, workspace):
    orch, _ = _orchestrator(workspace, _example_archive(tmp_path))
    orch.state = RestoreState.EXTRACTED
    with pytest.raises(StateTransitionError):
        orch.verify()
    orch.state = RestoreState.CONFIRMED
    with pytest.raises(StateTransitionError):
        orch.restore_components()

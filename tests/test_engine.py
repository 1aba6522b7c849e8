import logging

import pytest

from conftest import FakePlatform, StepClock, make_workflow
from flowguard.config import FlowguardConfig
from flowguard.engine import IntegrityEngine
from flowguard.errors import InvalidWorkflowIdError, ResourceLockedError, SnapshotError
from flowguard.snapshots.store import SnapshotStore
from flowguard.utils.cache import TTLCache
from flowguard.utils.logger import init_logger


@pytest.fixture
def engine(tmp_path):
    platform = FakePlatform({"wf1": make_workflow()})
    store = SnapshotStore(tmp_path / "backups", platform, keep_last=2, min_free_bytes=0, clock=StepClock())
    return IntegrityEngine(platform, store)


def test_from_config_wires_components(tmp_path):
    cfg = FlowguardConfig(
        backup_root=tmp_path / "backups",
        keep_last=4,
        max_graph_depth=7,
        lock_ttl_seconds=60,
        log_level="WARNING",
        log_dir=tmp_path / "logs",
    )
    try:
        engine = IntegrityEngine.from_config(FakePlatform(), cfg)
        assert engine.store.root == tmp_path / "backups"
        assert engine.store.keep_last == 4
        assert engine.validator.max_depth == 7
        assert engine.locks.ttl == 60
        assert logging.getLogger("flowguard").level == logging.WARNING
        assert (tmp_path / "logs").is_dir()
    finally:
        root = logging.getLogger("flowguard")
        for h in list(root.handlers):
            h.close()
            root.removeHandler(h)
        root.setLevel(logging.NOTSET)
        root.propagate = True


def test_snapshot_lifecycle(engine):
    first = engine.create_snapshot("wf1", "first")
    engine.platform.workflows["wf1"]["nodes"].append({"id": "n3", "name": "Node 3", "type": "n8n-nodes-base.set"})
    second = engine.create_snapshot("wf1")

    listed = engine.list_snapshots("wf1")
    assert [m.backup_id for m in listed] == [second.backup_id, first.backup_id]

    diff = engine.diff_snapshots("wf1", first.backup_id, second.backup_id)
    assert diff.added == ["Node 3"]

    result = engine.restore_snapshot("wf1", first.backup_id)
    assert result.restored
    assert len(engine.platform.workflows["wf1"]["nodes"]) == 2
    assert len(engine.list_snapshots("wf1")) == 2

    engine.delete_snapshot("wf1", listed[0].backup_id)
    assert engine.rotate_snapshots("wf1", keep_last=0)
    assert engine.list_snapshots("wf1") == []


def test_validation_surface(engine):
    wf = make_workflow()
    assert engine.validate_structure(wf).valid
    assert engine.validate_expressions(wf).valid
    assert engine.lint(wf).score == 100
    assert engine.suggest_improvements(wf).summary == "Workflow is well-optimized"


def test_credential_validation_uses_platform(engine):
    engine.platform.credentials = [{"id": "c1", "name": "Billing", "type": "httpBasicAuth"}]
    wf = make_workflow()
    wf["nodes"][0]["credentials"] = {"httpBasicAuth": {"id": "c1"}}
    assert engine.validate_credentials(wf).valid

    wf["nodes"][1]["credentials"] = {"httpBasicAuth": {"id": "gone"}}
    assert engine.validate_credentials(wf).types() == ["credential_not_found"]


def test_rotate_snapshots_rejects_path_like_id(engine):
    with pytest.raises(SnapshotError) as exc:
        engine.rotate_snapshots("../etc")
    assert isinstance(exc.value.__cause__, InvalidWorkflowIdError)


def test_lock_surface(engine):
    engine.acquire_lock("cred-1", "exec-A")
    engine.acquire_lock("cred-2", "exec-A")
    assert engine.is_locked("cred-1")
    assert engine.holders("cred-1") == ["exec-A"]
    with pytest.raises(ResourceLockedError):
        engine.ensure_unlocked("cred-1")

    engine.release_lock("cred-1", "exec-A")
    assert not engine.is_locked("cred-1")
    engine.release_all_locks("exec-A")
    assert not engine.is_locked("cred-2")


def test_ttl_cache_expiry():
    now = [0.0]
    cache = TTLCache(max_size=2, ttl=10, clock=lambda: now[0])
    cache.set("a", 1)
    now[0] = 11
    assert cache.get("a") is None

    calls = []
    assert cache.get_or_load("b", lambda: calls.append(1) or 2) == 2
    assert cache.get_or_load("b", lambda: calls.append(1) or 3) == 2
    assert len(calls) == 1


def test_ttl_cache_evicts_oldest():
    cache = TTLCache(max_size=2)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.set("c", 3)
    assert cache.get("a") is None
    assert len(cache) == 2


def test_init_logger_owns_its_output(tmp_path):
    try:
        log = init_logger("flowguard", level=logging.INFO, log_dir=tmp_path)
        assert log.propagate is False
        assert len(log.handlers) == 2
        init_logger("flowguard", level=logging.INFO)
        assert len(log.handlers) == 1
    finally:
        root = logging.getLogger("flowguard")
        for h in list(root.handlers):
            h.close()
            root.removeHandler(h)
        root.setLevel(logging.NOTSET)
        root.propagate = True

import pytest

from flowguard.errors import DuplicateNodeNameError, SnapshotError
from flowguard.snapshots.diff import compare_workflows, diff_snapshots


def test_diff_by_node_name():
    before = {"nodes": [{"name": "Node 1", "type": "t1", "position": [0, 0]}, {"name": "Node 2"}]}
    after = {"nodes": [{"name": "Node 1", "type": "t1", "position": [10, 10]}, {"name": "Node 3"}]}

    diff = compare_workflows(before, after)

    assert diff.added == ["Node 3"]
    assert diff.removed == ["Node 2"]
    assert diff.modified == ["Node 1"]
    assert diff.summary == "1 node(s) added, 1 node(s) removed, 1 node(s) modified"


def test_identical_content_is_not_modified():
    before = {"nodes": [{"name": "A", "parameters": {"x": [1, {"y": 2}]}}]}
    after = {"nodes": [{"parameters": {"x": [1, {"y": 2}]}, "name": "A"}]}

    diff = compare_workflows(before, after)

    assert diff.modified == []
    assert diff.summary == "No changes detected"
    assert not diff.changed


def test_connection_rewiring_is_flagged():
    nodes = [{"name": "A"}, {"name": "B"}]
    before = {"nodes": nodes, "connections": {}}
    after = {"nodes": nodes, "connections": {"a": {"main": [[{"node": "b", "type": "main", "index": 0}]]}}}

    diff = compare_workflows(before, after)

    assert diff.summary == "No changes detected"
    assert diff.connections_changed
    assert diff.to_dict()["connectionsChanged"] is True


def test_duplicate_names_are_rejected():
    before = {"nodes": [{"name": "A", "id": "1"}, {"name": "A", "id": "2"}]}
    with pytest.raises(DuplicateNodeNameError) as exc:
        compare_workflows(before, {"nodes": []})
    assert exc.value.names == ["A"]


def test_diff_stored_snapshots(store, platform):
    first = store.create("wf1")
    platform.workflows["wf1"]["nodes"][0]["position"] = [999, 999]
    platform.workflows["wf1"]["nodes"].append({"id": "n9", "name": "Extra", "type": "n8n-nodes-base.set"})
    second = store.create("wf1")

    diff = diff_snapshots(store, "wf1", first.backup_id, second.backup_id)

    assert diff.added == ["Extra"]
    assert diff.removed == []
    assert diff.modified == ["Node 1"]


def test_diff_missing_snapshot_is_wrapped(store):
    first = store.create("wf1")
    with pytest.raises(SnapshotError) as exc:
        diff_snapshots(store, "wf1", first.backup_id, "backup_wf1_2026-02-11T10-00-00-000Z_ffffffff")
    assert "Failed to compare backups" in str(exc.value)

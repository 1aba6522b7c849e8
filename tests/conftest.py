import copy
from datetime import datetime, timedelta, timezone

import pytest

from flowguard.snapshots.store import SnapshotStore


class FakePlatform:
    """In-memory stand-in for the remote automation platform."""

    def __init__(self, workflows=None, node_types=None, credentials=None):
        self.workflows = {k: copy.deepcopy(v) for k, v in (workflows or {}).items()}
        self.node_types = node_types if node_types is not None else [
            {"name": "n8n-nodes-base.manualTrigger"},
            {"name": "n8n-nodes-base.httpRequest"},
            {"name": "n8n-nodes-base.set"},
        ]
        self.credentials = list(credentials or [])
        self.pushed = []
        self.node_type_calls = 0
        self.fail_push = False
        self.fail_node_types = False
        self.fail_credentials = False

    def fetch_workflow(self, workflow_id):
        if workflow_id not in self.workflows:
            raise KeyError(f"workflow {workflow_id} not found")
        return copy.deepcopy(self.workflows[workflow_id])

    def push_workflow(self, workflow_id, workflow):
        if self.fail_push:
            raise ConnectionError("platform unavailable")
        self.pushed.append((workflow_id, copy.deepcopy(workflow)))
        self.workflows[workflow_id] = copy.deepcopy(workflow)
        return workflow

    def list_node_types(self):
        self.node_type_calls += 1
        if self.fail_node_types:
            raise ConnectionError("platform unavailable")
        return list(self.node_types)

    def list_credentials(self):
        if self.fail_credentials:
            raise ConnectionError("credential service unavailable")
        return list(self.credentials)


class StepClock:
    """Returns a strictly increasing UTC instant on every call."""

    def __init__(self, start=None, step=timedelta(seconds=1)):
        self.now = start or datetime(2026, 2, 11, 10, 0, 0, tzinfo=timezone.utc)
        self.step = step

    def __call__(self):
        current = self.now
        self.now = self.now + self.step
        return current


def make_workflow(name="Demo", n_nodes=2):
    nodes = [
        {
            "id": f"n{i}",
            "name": f"Node {i}",
            "type": "n8n-nodes-base.set",
            "typeVersion": 1,
            "position": [i * 100, 0],
            "parameters": {},
        }
        for i in range(1, n_nodes + 1)
    ]
    connections = {
        f"n{i}": {"main": [[{"node": f"n{i + 1}", "type": "main", "index": 0}]]}
        for i in range(1, n_nodes)
    }
    return {"id": "wf1", "name": name, "nodes": nodes, "connections": connections, "active": False}


@pytest.fixture
def platform():
    return FakePlatform({"wf1": make_workflow()})


@pytest.fixture
def clock():
    return StepClock()


@pytest.fixture
def store(tmp_path, platform, clock):
    counter = iter(range(1, 10_000))
    return SnapshotStore(
        tmp_path / "backups",
        platform,
        min_free_bytes=0,
        clock=clock,
        nonce_factory=lambda: f"{next(counter):08x}",
    )

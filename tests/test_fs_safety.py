import json
import os

import pytest

from flowguard.utils.fs_safety import (
    MB,
    available_disk_space,
    estimate_size,
    format_file_size,
    validate_safe_path,
)
from flowguard.utils.io import read_json, write_json


def test_path_inside_root_is_safe(tmp_path):
    assert validate_safe_path(tmp_path / "wf1" / "a.json", tmp_path).safe


def test_root_itself_is_safe(tmp_path):
    assert validate_safe_path(tmp_path, tmp_path)


@pytest.mark.parametrize("rel", ["../outside.json", "wf1/../../outside.json"])
def test_traversal_is_rejected(tmp_path, rel):
    root = tmp_path / "root"
    root.mkdir()
    check = validate_safe_path(os.path.join(str(root), rel), root)
    assert not check.safe
    assert check.reason == "Path outside allowed directory"


def test_sibling_with_common_prefix_is_rejected(tmp_path):
    root = tmp_path / "backups"
    check = validate_safe_path(tmp_path / "backups-evil" / "x.json", root)
    assert not check


def test_symlink_target_is_rejected(tmp_path):
    real = tmp_path / "real.json"
    real.write_text("{}")
    link = tmp_path / "link.json"
    os.symlink(real, link)
    check = validate_safe_path(link, tmp_path)
    assert check.reason == "Symlinks are not allowed"


def test_symlinked_parent_is_rejected(tmp_path):
    real_dir = tmp_path / "real"
    real_dir.mkdir()
    os.symlink(real_dir, tmp_path / "linked")
    check = validate_safe_path(tmp_path / "linked" / "new.json", tmp_path)
    assert check.reason == "Parent directory is a symlink"


def test_fifo_is_rejected(tmp_path):
    if not hasattr(os, "mkfifo"):
        pytest.skip("no FIFOs on this platform")
    fifo = tmp_path / "pipe"
    os.mkfifo(fifo)
    assert validate_safe_path(fifo, tmp_path).reason == "Path is not a regular file or directory"


def test_estimate_small_document_is_exact():
    doc = {"name": "héllo", "nodes": [1, 2, 3]}
    assert estimate_size(doc) == len(json.dumps(doc, ensure_ascii=False).encode("utf-8"))


def test_estimate_large_document_is_extrapolated():
    doc = {"nodes": [{"id": str(i), "name": "x" * 50} for i in range(2000)]}
    assert estimate_size(doc) > 10_000


def test_available_disk_space_walks_up_to_existing_dir(tmp_path):
    free = available_disk_space(tmp_path / "not" / "created" / "yet")
    assert free is None or free > 0


@pytest.mark.parametrize("n,expected", [
    (512, "512B"),
    (2048, "2.0KB"),
    (5 * MB, "5.0MB"),
])
def test_format_file_size(n, expected):
    assert format_file_size(n) == expected


def test_write_json_is_atomic(tmp_path):
    target = tmp_path / "doc.json"
    write_json(target, {"v": 1})
    write_json(target, {"v": 2}, stream=True)
    assert read_json(target) == {"v": 2}
    assert [p.name for p in tmp_path.iterdir()] == ["doc.json"]


def test_available_disk_space_reports_psutil_free_bytes(tmp_path, monkeypatch):
    class Usage:
        free = 12345

    seen = []
    monkeypatch.setattr("flowguard.utils.fs_safety.psutil.disk_usage",
                        lambda p: seen.append(p) or Usage())
    assert available_disk_space(tmp_path / "missing") == 12345
    assert seen == [str(tmp_path)]


def test_available_disk_space_failure_is_unknown(tmp_path, monkeypatch):
    def boom(p):
        raise PermissionError("denied")

    monkeypatch.setattr("flowguard.utils.fs_safety.psutil.disk_usage", boom)
    assert available_disk_space(tmp_path) is None

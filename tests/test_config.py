from pathlib import Path

import pytest

from flowguard.config import FlowguardConfig, load_config


def test_defaults_without_file_or_env():
    cfg = load_config(env={})
    assert cfg == FlowguardConfig()
    assert cfg.keep_last == 10
    assert cfg.lock_ttl_seconds == 900


def test_yaml_then_env(tmp_path):
    cfg_file = tmp_path / "flowguard.yaml"
    cfg_file.write_text("backup_root: /srv/backups\nkeep_last: 3\nmax_graph_depth: 50\n", encoding="utf-8")

    cfg = load_config(env={"FLOWGUARD_CONFIG": str(cfg_file), "FLOWGUARD_KEEP_LAST": "7"})

    assert cfg.backup_root == Path("/srv/backups")
    assert cfg.max_graph_depth == 50
    assert cfg.keep_last == 7


def test_explicit_path_wins_over_env_path(tmp_path):
    a = tmp_path / "a.yaml"
    b = tmp_path / "b.yaml"
    a.write_text("keep_last: 1\n", encoding="utf-8")
    b.write_text("keep_last: 2\n", encoding="utf-8")
    assert load_config(a, env={"FLOWGUARD_CONFIG": str(b)}).keep_last == 1


def test_empty_yaml_file(tmp_path):
    f = tmp_path / "empty.yaml"
    f.write_text("", encoding="utf-8")
    assert load_config(f, env={}) == FlowguardConfig()


def test_unknown_key_is_rejected(tmp_path):
    f = tmp_path / "bad.yaml"
    f.write_text("keep_lsat: 3\n", encoding="utf-8")
    with pytest.raises(ValueError, match="keep_lsat"):
        load_config(f, env={})


@pytest.mark.parametrize("env", [
    {"FLOWGUARD_KEEP_LAST": "many"},
    {"FLOWGUARD_KEEP_LAST": "-1"},
    {"FLOWGUARD_LOCK_TTL_SECONDS": "0"},
])
def test_bad_values_are_rejected(env):
    with pytest.raises(ValueError):
        load_config(env=env)


def test_log_settings(tmp_path):
    cfg = load_config(env={"FLOWGUARD_LOG_LEVEL": "debug", "FLOWGUARD_LOG_DIR": str(tmp_path)})
    assert cfg.log_level == "DEBUG"
    assert cfg.log_dir == tmp_path

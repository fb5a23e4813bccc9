from collective_node.config import get_data_dir, load_config

YAML = """
pool:
  account: "@p"
  target: "@t"
  min_delegation: 7
  admins: ["@admin"]
governance:
  one_vote_per_member: false
staking:
  revoke_delay_rounds: 5
"""


def test_defaults_without_file(tmp_path):
    s = load_config(str(tmp_path), environ={})
    assert s.pool.account == "@collective_pool"
    assert s.pool.min_delegation == 5
    assert s.governance.one_vote_per_member is True
    assert s.governance.enforce_target_lifecycle is True
    assert s.persistence.data_dir == "data"
    assert s.server.port == 8000


def test_yaml_overlays_defaults(tmp_path):
    (tmp_path / "collective_config.yaml").write_text(YAML)
    s = load_config(str(tmp_path), environ={})
    assert s.pool.account == "@p"
    assert s.pool.min_delegation == 7
    assert s.pool.admins == ["@admin"]
    assert s.pool.members == []
    assert s.governance.one_vote_per_member is False
    assert s.governance.enforce_target_lifecycle is True
    assert s.staking.revoke_delay_rounds == 5


def test_env_overrides_yaml(tmp_path):
    (tmp_path / "collective_config.yaml").write_text(YAML)
    env = {
        "COLLECTIVE_MIN_DELEGATION": "9",
        "COLLECTIVE_POOL_TARGET": "@env",
        "COLLECTIVE_LOG_LEVEL": "debug",
        "COLLECTIVE_PORT": "9001",
    }
    s = load_config(str(tmp_path), environ=env)
    assert s.pool.min_delegation == 9
    assert s.pool.target == "@env"
    assert s.logging.level == "DEBUG"
    assert s.server.port == 9001


def test_bad_env_value_is_ignored(tmp_path):
    s = load_config(str(tmp_path), environ={"COLLECTIVE_MIN_DELEGATION": "lots"})
    assert s.pool.min_delegation == 5


def test_unreadable_yaml_falls_back(tmp_path):
    (tmp_path / "collective_config.yaml").write_text("pool: [unclosed")
    assert load_config(str(tmp_path), environ={}).pool.min_delegation == 5


def test_explicit_path_and_env_path(tmp_path):
    other = tmp_path / "other.yaml"
    other.write_text(YAML)
    assert load_config(path=str(other), environ={}).pool.account == "@p"
    assert load_config(str(tmp_path), environ={"COLLECTIVE_CONFIG": str(other)}).pool.account == "@p"


def test_data_dir_is_relative_to_root(tmp_path):
    s = load_config(str(tmp_path), environ={})
    assert get_data_dir(s, str(tmp_path)) == tmp_path / "data"


def test_launcher_arguments():
    from collective_node.__main__ import parse_args

    args = parse_args(["--port", "9001", "--data-dir", "/tmp/pool"])
    assert args.port == 9001
    assert args.host is None
    assert args.data_dir == "/tmp/pool"

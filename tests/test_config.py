"""
tests/test_config.py — YAML Config Loader Tests
================================================
"""

from __future__ import annotations

import textwrap

import pytest

from stagbot.config import load_config
from stagbot.engine.milestones import DEFAULT_MILESTONES, Milestone
from stagbot.errors import InvalidConfiguration

MINIMAL = """
community_name: "Deer Haven"
guild_id: 42
authorized_user: "elijah.cc"
"""


def _write(tmp_path, body: str):
    path = tmp_path / "config.yaml"
    path.write_text(textwrap.dedent(body), encoding="utf-8")
    return path


def test_minimal_config_uses_defaults(tmp_path):
    cfg = load_config(_write(tmp_path, MINIMAL))
    assert cfg.community_name == "Deer Haven"
    assert cfg.guild_id == 42
    assert cfg.milestones == DEFAULT_MILESTONES
    assert cfg.mute_role_name == "Muted"
    assert cfg.admin_role_id is None
    assert cfg.db_timeout_seconds == 10.0
    assert cfg.award_settle_seconds == 5.0
    assert cfg.log_retention_days == 30


def test_custom_milestones(tmp_path):
    cfg = load_config(_write(tmp_path, MINIMAL + """
milestones:
  - {threshold: 5, reward_name: "Fawn"}
  - {threshold: 50, reward_name: "Stag"}
"""))
    assert cfg.milestones == (Milestone(5, "Fawn"), Milestone(50, "Stag"))


def test_role_ids_are_parsed(tmp_path):
    cfg = load_config(_write(tmp_path, MINIMAL + """
admin_role_id: 111
moderator_role_id: 222
log_channel_id: 333
"""))
    assert (cfg.admin_role_id, cfg.moderator_role_id, cfg.log_channel_id) == (111, 222, 333)


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError, match="config.yaml.example"):
        load_config(tmp_path / "nope.yaml")


def test_missing_required_key(tmp_path):
    with pytest.raises(KeyError):
        load_config(_write(tmp_path, 'community_name: "x"\nguild_id: 1\n'))


@pytest.mark.parametrize("extra", [
    "milestones:\n  - {threshold: 100, reward_name: B}\n  - {threshold: 10, reward_name: A}\n",
    "milestones:\n  - {threshold: 10, reward_name: A}\n  - {threshold: 10, reward_name: B}\n",
    "milestones: []\n",
    "milestones:\n  - {threshold: ten, reward_name: A}\n",
    "milestones: nope\n",
    "db_timeout_seconds: 0\n",
    "award_settle_seconds: -1\n",
    "leaderboard_default_size: 30\n",
])
def test_invalid_values_refuse_start(tmp_path, extra):
    with pytest.raises(InvalidConfiguration):
        load_config(_write(tmp_path, MINIMAL + extra))

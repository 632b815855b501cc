"""
stagbot.config — YAML Configuration Loader
===========================================

**Why this file exists:**
This module reads ``config.yaml`` for everything that is not a secret:
guild identity, who may moderate, the milestone ladder, data-file paths
and tuning knobs.  Secrets (``DISCORD_TOKEN``, ``DATABASE_URL``) come from
``.env`` and never live here.

The milestone list is validated while loading — an unsorted or duplicated
ladder raises :class:`~stagbot.errors.InvalidConfiguration` so the bot
refuses to start instead of awarding the wrong roles.

Usage::

    from stagbot.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.community_name)    # "Deer Haven"
    print(cfg.milestones[0])     # Milestone(threshold=10, reward_name=...)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml

from stagbot.engine.milestones import DEFAULT_MILESTONES, Milestone, validate_milestones
from stagbot.errors import InvalidConfiguration


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class StagbotConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    community_name: str

    # Discord
    guild_id: int  # The one guild whose messages are counted

    # Permissions
    authorized_user: str  # Username or tag with OWNER rights
    admin_role_id: int | None = None
    moderator_role_id: int | None = None

    # Moderation
    log_channel_id: int | None = None  # Automod alerts land here
    mute_role_name: str = "Muted"

    # Leveling
    milestones: tuple[Milestone, ...] = field(default=DEFAULT_MILESTONES)
    announce_milestones: bool = True
    award_settle_seconds: float = 5.0
    leaderboard_default_size: int = 10

    # Data files
    faq_path: str = "data/faq.json"
    rules_path: str = "data/rules.json"
    badwords_path: str = "data/badwords.txt"

    # Logging
    log_dir: str = "logs"
    log_retention_days: int = 30

    # Database
    db_timeout_seconds: float = 10.0


def _optional_int(raw: dict, key: str) -> int | None:
    value = raw.get(key)
    return int(value) if value else None


def _parse_milestones(entries: object) -> tuple[Milestone, ...]:
    if not isinstance(entries, list):
        raise InvalidConfiguration("'milestones' must be a list of {threshold, reward_name}")
    parsed: list[Milestone] = []
    for entry in entries:
        if not isinstance(entry, dict) or "threshold" not in entry or "reward_name" not in entry:
            raise InvalidConfiguration(f"Malformed milestone entry: {entry!r}")
        try:
            threshold = int(entry["threshold"])
        except (TypeError, ValueError):
            raise InvalidConfiguration(f"Milestone threshold is not a number: {entry!r}") from None
        parsed.append(Milestone(threshold=threshold, reward_name=str(entry["reward_name"])))
    return validate_milestones(parsed)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> StagbotConfig:
    """Read *path* and return a :class:`StagbotConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    InvalidConfiguration
        If the milestone ladder or a tuning value is invalid.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    milestones = (
        _parse_milestones(raw["milestones"]) if "milestones" in raw else DEFAULT_MILESTONES
    )

    cfg = StagbotConfig(
        community_name=raw["community_name"],
        guild_id=int(raw["guild_id"]),
        authorized_user=str(raw["authorized_user"]),
        admin_role_id=_optional_int(raw, "admin_role_id"),
        moderator_role_id=_optional_int(raw, "moderator_role_id"),
        log_channel_id=_optional_int(raw, "log_channel_id"),
        mute_role_name=raw.get("mute_role_name") or "Muted",
        milestones=milestones,
        announce_milestones=bool(raw.get("announce_milestones", True)),
        award_settle_seconds=float(raw.get("award_settle_seconds", 5.0)),
        leaderboard_default_size=int(raw.get("leaderboard_default_size", 10)),
        faq_path=raw.get("faq_path", "data/faq.json"),
        rules_path=raw.get("rules_path", "data/rules.json"),
        badwords_path=raw.get("badwords_path", "data/badwords.txt"),
        log_dir=raw.get("log_dir", "logs"),
        log_retention_days=int(raw.get("log_retention_days", 30)),
        db_timeout_seconds=float(raw.get("db_timeout_seconds", 10.0)),
    )

    if cfg.db_timeout_seconds <= 0:
        raise InvalidConfiguration("db_timeout_seconds must be positive")
    if cfg.award_settle_seconds < 0:
        raise InvalidConfiguration("award_settle_seconds cannot be negative")
    if not 1 <= cfg.leaderboard_default_size <= 25:
        raise InvalidConfiguration("leaderboard_default_size must be between 1 and 25")
    return cfg

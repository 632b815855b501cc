"""
stagbot — Moderation & Message-Milestone Bot for Discord
=========================================================
Moderates a single Discord guild (ban, kick, mute, temp-ban), answers
FAQ/rule lookups, relays anonymous staff broadcasts, and counts every
member's messages to award milestone roles.

Package layout::

    stagbot/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Durations, milestone colours, badges
    ├── errors.py          # Error taxonomy
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   └── models.py      # message_counts, moderation_actions
    ├── engine/
    │   ├── milestones.py  # Milestone list validation + crossing maths
    │   ├── locks.py       # Per-key asyncio locks
    │   └── wordfilter.py  # Banned-word matching
    ├── services/
    │   ├── count_service.py        # Message-count persistence
    │   ├── tracker.py              # MessageCountTracker
    │   ├── roles.py                # Role provider (discord.py)
    │   ├── announcement_service.py # Throttled text announcements
    │   ├── moderation_service.py   # Audit log + expiring actions
    │   ├── history_service.py      # Channel history scanning for /sync
    │   ├── content_service.py      # FAQ / rules data files
    │   ├── log_files.py            # Daily per-category log files
    │   └── embeds.py               # Embed builders
    └── bot/
        ├── core.py        # Bot subclass, cog loader
        ├── checks.py      # Permission levels
        └── cogs/
            ├── leveling.py   # on_message counting, /level, /leaderboard, /sync
            ├── moderation.py # /ban, /kick, /mute, /tempban
            ├── info.py       # /faq, /rule
            ├── broadcast.py  # /message
            ├── automod.py    # Banned-word filter
            └── tasks.py      # Expiry + log retention loops
"""

__version__ = "0.1.0"

"""
stagbot.bot.__main__ — Entry point for ``python -m stagbot.bot``
================================================================

Wiring:
1. Load .env (secrets).
2. Load config.yaml (soft settings) and the FAQ / rules / banned-word files.
3. Attach the daily category log files.
4. Create the SQLAlchemy engine and ensure tables exist.
5. Create the StagbotBot and hand it config + engine + data.
6. Start the bot (blocking — runs the asyncio event loop).

Run with::

    python -m stagbot.bot
"""

from __future__ import annotations

import logging
import os
import sys

from dotenv import load_dotenv

from stagbot.bot.core import StagbotBot
from stagbot.config import load_config
from stagbot.database.engine import create_db_engine, init_db
from stagbot.engine.wordfilter import WordFilter
from stagbot.errors import InvalidConfiguration
from stagbot.services.content_service import load_faq, load_rules
from stagbot.services.log_files import install_file_handler

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("stagbot")


def main() -> None:
    """Bootstrap and run the bot."""

    # 1. Environment variables (secrets).
    load_dotenv()

    token = os.getenv("DISCORD_TOKEN")
    if not token or token == "your-discord-bot-token-here":
        logger.critical(
            "DISCORD_TOKEN is not set.  "
            "Copy .env.example → .env and paste your bot token."
        )
        sys.exit(1)

    # 2. Soft configuration and data files.
    try:
        cfg = load_config()
        faq = load_faq(cfg.faq_path)
        rules = load_rules(cfg.rules_path)
    except InvalidConfiguration as exc:
        logger.critical("Invalid configuration: %s", exc)
        sys.exit(1)
    word_filter = WordFilter.from_file(cfg.badwords_path)
    logger.info(
        "Config loaded — Community: %s, %d milestones",
        cfg.community_name, len(cfg.milestones),
    )

    # 3. Log files.
    install_file_handler(cfg.log_dir)

    # 4. Database.
    engine = create_db_engine()
    init_db(engine)

    # 5. Bot.
    bot = StagbotBot(cfg, engine, faq=faq, rules=rules, word_filter=word_filter)

    # 6. Run (blocks until Ctrl+C or SIGTERM).
    logger.info("Starting bot…")
    try:
        bot.run(token, log_handler=None)
    except KeyboardInterrupt:
        logger.info("Shutting down gracefully…")


if __name__ == "__main__":
    main()

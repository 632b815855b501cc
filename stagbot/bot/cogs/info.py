"""
stagbot.bot.cogs.info — FAQ & Rules Commands
=============================================

- /faq number — show one frequently asked question
- /rule number — show one server rule

Entries come from the JSON files loaded at start-up (``bot.faq`` and
``bot.rules``); numbering is 1-based.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands

from stagbot.services.embeds import build_faq_embed, build_rule_embed

if TYPE_CHECKING:
    from stagbot.bot.core import StagbotBot


class Info(commands.Cog, name="Info"):
    """Read-only community information."""

    def __init__(self, bot: StagbotBot) -> None:
        self.bot = bot

    @app_commands.command(name="faq", description="Display frequently asked questions")
    @app_commands.describe(number="The FAQ number to display")
    async def faq(self, interaction: discord.Interaction, number: int) -> None:
        entry = self.bot.faq.get(number)
        if entry is None:
            await interaction.response.send_message(
                f"❌ FAQ #{number} does not exist. Available FAQs: 1-{len(self.bot.faq)}",
                ephemeral=True,
            )
            return
        await interaction.response.send_message(embed=build_faq_embed(number, entry))

    @app_commands.command(name="rule", description="Display a specific rule by number")
    @app_commands.describe(number="The rule number to display")
    async def rule(self, interaction: discord.Interaction, number: int) -> None:
        entry = self.bot.rules.get(number)
        if entry is None:
            await interaction.response.send_message(
                f"❌ Rule #{number} does not exist. Available rules: 1-{len(self.bot.rules)}",
                ephemeral=True,
            )
            return
        await interaction.response.send_message(embed=build_rule_embed(number, entry))


async def setup(bot: StagbotBot) -> None:
    await bot.add_cog(Info(bot))

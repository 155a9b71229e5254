import asyncio
import logging
import traceback
from typing import Optional

import discord
from discord.ext import commands
from discord import app_commands

from ladder_bot.config import Config
from ladder_bot.database.database import Database
from ladder_bot.operations.ladder import LadderOperations
from ladder_bot.services.configuration import ConfigurationService
from ladder_bot.ui.publisher import DiscordPublisher
from ladder_bot.utils.logger import setup_logger


class LadderBot(commands.Bot):
    def __init__(self):
        intents = discord.Intents.default()
        intents.guilds = True
        intents.members = True

        super().__init__(
            command_prefix=Config.COMMAND_PREFIX,
            intents=intents,
            help_command=None
        )

        # Attach app command error handler
        self.tree.on_error = self.on_app_command_error

        self.db: Optional[Database] = None
        self.config_service: Optional[ConfigurationService] = None
        self.ops: Optional[LadderOperations] = None
        self.publisher: Optional[DiscordPublisher] = None
        self.logger = setup_logger(__name__)

    async def setup_hook(self):
        """Called when the bot is starting up"""
        self.logger.info("Setting up Ladder Bot...")

        # Initialize database
        self.db = Database()
        await self.db.initialize()

        # Runtime settings snapshot
        self.config_service = ConfigurationService(self.db)
        await self.config_service.load()

        # Operations graph; the publisher renders the leaderboard
        self.publisher = DiscordPublisher(self)
        self.ops = LadderOperations.build(self.db, renderer=self.publisher.render_leaderboard)

        await self.load_cogs()
        await self._sync_commands()

        self.logger.info("Ladder Bot setup complete!")

    async def load_cogs(self):
        """Load all cogs"""
        cogs_to_load = [
            'ladder_bot.cogs.challenge',
            'ladder_bot.cogs.admin',
            'ladder_bot.cogs.player',
            'ladder_bot.cogs.housekeeping',
        ]

        for cog in cogs_to_load:
            try:
                await self.load_extension(cog)
                self.logger.info(f"Loaded cog: {cog}")
            except Exception as e:
                self.logger.error(f"Failed to load cog {cog}: {e}", exc_info=True)

    async def _sync_commands(self):
        """Sync slash commands with Discord"""
        if not self.tree.get_commands():
            self.logger.warning("No application commands found to sync. Check for cog loading errors.")
            return

        try:
            guild_ids = Config.get_guild_ids()

            if guild_ids:
                # Guild-specific sync is instant
                self.logger.info(f"Syncing commands to {len(guild_ids)} guild(s): {guild_ids}...")
                for guild_id in guild_ids:
                    try:
                        guild = discord.Object(id=guild_id)
                        self.tree.copy_global_to(guild=guild)
                        synced = await self.tree.sync(guild=guild)
                        self.logger.info(f"Synced {len(synced)} command(s) to guild {guild_id}")
                    except discord.errors.Forbidden:
                        self.logger.error(
                            f"Permission error syncing to guild {guild_id}. Ensure the bot has the "
                            "'applications.commands' scope and is in the guild.", exc_info=True
                        )
                    except discord.errors.HTTPException as e:
                        self.logger.error(
                            f"HTTP error syncing to guild {guild_id}. Status: {e.status}, Response: {e.text}",
                            exc_info=True
                        )
            else:
                # Global sync can take up to an hour to propagate
                self.logger.info("Syncing commands globally...")
                synced = await self.tree.sync()
                self.logger.info(f"Synced {len(synced)} command(s) globally")
        except Exception as e:
            self.logger.error(f"Failed to sync commands: {e}", exc_info=True)

    async def on_ready(self):
        """Called when the bot is ready"""
        self.logger.info(f'{self.user} has connected to Discord!')
        self.logger.info(f'Bot is in {len(self.guilds)} guilds')

        await self.change_presence(activity=discord.Game(name="the ladder | /profile"))
        await self.ops.leaderboard.refresh()

    async def on_app_command_error(self, interaction: discord.Interaction, error: app_commands.AppCommandError):
        """Global error handler for slash commands"""
        command_name = interaction.command.name if interaction.command else 'Unknown'
        if isinstance(error, app_commands.CheckFailure):
            self.logger.info(f"Permission denied for command '{command_name}' by user {interaction.user}")
        else:
            self.logger.error(f"Error in app command '{command_name}': {error}", exc_info=True)

        if isinstance(error, app_commands.CommandOnCooldown):
            embed = discord.Embed(
                title="Slow down",
                description=f"Try again in {error.retry_after:.0f} seconds.",
                color=discord.Color.orange()
            )
        elif isinstance(error, app_commands.CheckFailure) and command_name.startswith('admin-'):
            embed = discord.Embed(
                title="Administrative Privileges Required",
                description="This command is restricted to ladder administrators.",
                color=discord.Color.red()
            )
            embed.set_footer(text="Contact the bot owner if you believe you should have access.")
        elif isinstance(error, app_commands.CheckFailure):
            embed = discord.Embed(
                title="Permission Denied",
                description="You don't have the required permissions to use this command.",
                color=discord.Color.red()
            )
        else:
            embed = discord.Embed(
                title="An error occurred",
                description="An unexpected error occurred while processing your command.",
                color=discord.Color.red()
            )

        try:
            if interaction.response.is_done():
                await interaction.followup.send(embed=embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=embed, ephemeral=True)
        except Exception as e:
            self.logger.error(f"Failed to send error response: {e}")

    async def close(self):
        """Cleanup when bot is shutting down"""
        self.logger.info("Shutting down Ladder Bot...")

        if self.ops:
            await self.ops.leaderboard.shutdown()
        if self.db:
            await self.db.close()

        await super().close()


async def main():
    """Main entry point"""
    Config.validate()

    bot = LadderBot()

    try:
        await bot.start(Config.DISCORD_TOKEN)
    except KeyboardInterrupt:
        await bot.close()
    except Exception as e:
        logging.error(f"Fatal error: {e}")
        traceback.print_exc()
    finally:
        await bot.close()


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()

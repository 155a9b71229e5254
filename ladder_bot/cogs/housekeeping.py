"""
Housekeeping Cog - Background Tasks

Runs the expiration sweep every minute and the reminder sweep every few
minutes. Both loops fire once immediately after the bot is ready, so
challenges that expired while the bot was offline are settled on start.
"""

from discord.ext import commands, tasks

from ladder_bot.services.expiration import ExpirationService
from ladder_bot.utils.logger import setup_logger

logger = setup_logger(__name__)


class HousekeepingCog(commands.Cog):
    """Background expiry and reminder tasks"""

    def __init__(self, bot):
        self.bot = bot
        self.logger = logger
        self.expiration = ExpirationService(
            bot.ops.challenges,
            bot.ops.results,
            settings_provider=lambda: bot.config_service.settings,
            sink=bot.publisher,
        )

    async def cog_load(self):
        self.expire_challenges.start()
        self.send_reminders.start()
        self.logger.info("HousekeepingCog: Background tasks started")

    async def cog_unload(self):
        self.expire_challenges.cancel()
        self.send_reminders.cancel()
        self.logger.info("HousekeepingCog: Background tasks stopped")

    @tasks.loop(minutes=1)
    async def expire_challenges(self):
        try:
            expired = await self.expiration.process_expired_challenges()
            if expired:
                self.logger.info(f"Expired {len(expired)} challenge(s)")
        except Exception as e:
            self.logger.error(f"Error in expiration task: {e}", exc_info=True)

    @tasks.loop(minutes=5)
    async def send_reminders(self):
        try:
            sweep = await self.expiration.send_reminders()
            if sweep.failures:
                self.logger.warning(f"Reminder delivery failed for: {', '.join(sweep.failures)}")
        except Exception as e:
            self.logger.error(f"Error in reminder task: {e}", exc_info=True)

    @expire_challenges.before_loop
    @send_reminders.before_loop
    async def before_tasks(self):
        """Wait for bot to be ready before starting background tasks"""
        await self.bot.wait_until_ready()


async def setup(bot):
    await bot.add_cog(HousekeepingCog(bot))

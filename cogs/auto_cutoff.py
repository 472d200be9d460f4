# cogs/auto_cutoff.py
import discord
from discord.ext import commands, tasks

from config import AUTOCUT_INTERVAL_SECONDS
from timeclock.auto_cutoff import run_auto_cutoff_sweep
from timeclock.errors import StorageError
from timeclock.logger import log
from timeclock.time_utils import format_duration

COLOR_WARN = 0xFFA500


class AutoCutoffCog(commands.Cog):
    def __init__(self, bot: commands.Bot):
        self.bot = bot
        self.manager = bot.manager

    async def cog_load(self) -> None:
        self.sweeper.change_interval(seconds=AUTOCUT_INTERVAL_SECONDS)
        self.sweeper.start()

    def cog_unload(self):
        self.sweeper.cancel()

    @tasks.loop(seconds=60)
    async def sweeper(self):
        try:
            results = run_auto_cutoff_sweep(self.manager)
        except StorageError as e:
            log.error(f"[AUTOCUT] sweep failed: {e}")
            return
        except Exception:
            # tasks.loop stops for good on an unhandled error
            log.exception("[AUTOCUT] unexpected error during sweep")
            return

        timeclock = self.bot.get_cog("TimeClockCog")
        if timeclock is None:
            return
        for result in results:
            guild_id = result.config.guild_id
            try:
                for session, duration in result.closed:
                    await timeclock.delete_start_notice(session)
                    await timeclock.send_log(guild_id, embed=discord.Embed(
                        description=f"⚠️ Auto cut-off: session of <@{session.user_id}> closed "
                                    f"({format_duration(duration)}).",
                        color=COLOR_WARN,
                    ))
                await timeclock.refresh_dashboard(guild_id)
            except discord.HTTPException as e:
                log.warning(f"[AUTOCUT] notices failed guild={guild_id}: {e}")

    @sweeper.before_loop
    async def before_sweeper(self):
        await self.bot.wait_until_ready()


async def setup(bot: commands.Bot):
    await bot.add_cog(AutoCutoffCog(bot))

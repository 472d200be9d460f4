# bot.py
import discord
from discord.ext import commands

from config import DATA_FILE
from timeclock.logger import log
from timeclock.session_manager import SessionManager
from timeclock.state_store import StateStore

intents = discord.Intents.default()
intents.guilds = True
intents.members = True

bot = commands.Bot(
    command_prefix="!",
    intents=intents,
    activity=discord.Activity(type=discord.ActivityType.watching, name="the time clock"),
)

# Single store/manager shared by every cog
bot.store = StateStore(DATA_FILE)
bot.store.load()
bot.manager = SessionManager(bot.store)


@bot.event
async def on_ready():
    log.info(f"Logged in as {bot.user} (id={bot.user.id})")

    try:
        synced = await bot.tree.sync()
        log.info(f"[BOT] slash commands synced: {len(synced)}")
    except discord.HTTPException as e:
        log.error(f"[BOT] slash sync error: {e}")

    timeclock = bot.get_cog("TimeClockCog")
    if timeclock is not None:
        for config in bot.store.iter_guilds():
            await timeclock.refresh_dashboard(config.guild_id)

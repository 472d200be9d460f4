# main.py
import asyncio
import logging

from config import DISCORD_TOKEN, LOG_DIR, LOG_LEVEL, PORT
from bot import bot
from health import start_health_server
from timeclock.logger import get_logger


async def main():
    get_logger(level=getattr(logging, LOG_LEVEL, logging.INFO), log_dir=LOG_DIR)
    runner = await start_health_server(PORT)
    try:
        async with bot:
            await bot.load_extension("cogs.timeclock")
            await bot.load_extension("cogs.auto_cutoff")

            await bot.start(DISCORD_TOKEN)
    finally:
        await runner.cleanup()

if __name__ == "__main__":
    asyncio.run(main())

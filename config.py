# config.py
import os
from pathlib import Path
from dotenv import load_dotenv

env_path = Path(__file__).resolve().parent / ".env"
load_dotenv(dotenv_path=env_path, override=True)

DISCORD_TOKEN = os.getenv("DISCORD_TOKEN", "")
DATA_FILE = os.getenv("DATA_FILE", "timeclock.json")
PORT = int(os.getenv("PORT", "3000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_DIR = os.getenv("LOG_DIR", "logs")
AUTOCUT_INTERVAL_SECONDS = int(os.getenv("AUTOCUT_INTERVAL_SECONDS", "60"))
BUTTON_COOLDOWN_SECONDS = float(os.getenv("BUTTON_COOLDOWN_SECONDS", "3"))

if not DISCORD_TOKEN:
    raise SystemExit("Set the DISCORD_TOKEN environment variable (a .env file works too).")

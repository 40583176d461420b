"""
Runtime configuration.

Values come from the process environment; a local .env file is loaded first
so development setups don't need exported variables.
"""

import os
import tempfile

from dotenv import load_dotenv

load_dotenv()  # Loads variables from .env

# Required credential (checked at startup in bot.py)
DISCORD_TOKEN = os.getenv('DISCORD_TOKEN')

LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()

# Session / pending-range retention
SESSION_TTL = int(os.getenv('SESSION_TTL_SECONDS', '3600'))  # 1 hour
PENDING_RANGE_TTL = int(os.getenv('PENDING_RANGE_TTL_SECONDS', '600'))  # 10 minutes
SESSION_SWEEP_INTERVAL = 60  # seconds

# Chapter limits
MAX_CHAPTERS = int(os.getenv('MAX_CHAPTERS', '200'))
ALL_CHAPTERS = 999  # sentinel: "no explicit limit"

# Progress display
PROGRESS_INTERVAL = float(os.getenv('PROGRESS_INTERVAL_SECONDS', '2'))
PROGRESS_BAR_WIDTH = 10

# Metadata lookup
METADATA_TIMEOUT = int(os.getenv('METADATA_TIMEOUT_SECONDS', '10'))
NOVEL_INFO_PROFILE = os.getenv('NOVEL_INFO_PROFILE', 'detailed').lower()

# Output
NOVEL_OUTPUT_FORMAT = os.getenv('NOVEL_OUTPUT_FORMAT', 'epub').lower()
OUTPUT_DIR = os.getenv('OUTPUT_DIR') or os.path.join(tempfile.gettempdir(), 'novel_bot')
BOOK_CATEGORY = 'Web Novel'

# Scraper
SCRAPER_WORKERS = int(os.getenv('SCRAPER_WORKERS', '3'))
SCRAPER_DEBUG = os.getenv('SCRAPER_DEBUG', '0') == '1'
REQUEST_TIMEOUT = 15

# Exit code used when the process refuses to start (bot_supervisor won't retry it)
EXIT_CONFIG_ERROR = 2

import os
import sys

if  hasattr(sys, '_MEIPASS'):  # Running as bundled EXE
    PROJECT_ROOT = os.path.dirname(sys.executable)
    CONFIG_DIR = PROJECT_ROOT
else:  # Running from source
    PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    CONFIG_DIR = os.path.join(PROJECT_ROOT, 'config')
CONFIG_DIR = os.getenv('SCRIM_CONFIG_DIR', CONFIG_DIR)

# Project paths
DB_PATH = os.path.join(CONFIG_DIR, 'scrims.db')
CONFIG_PATH = os.path.join(CONFIG_DIR, 'config.json')
LOG_FILE = os.path.join(PROJECT_ROOT, 'bot.log')

# Default configuration
DEFAULT_CONFIG = {
    "regions": ["EU", "NA"],
    "platforms": ["PC", "Console"],
    "rank_weight": 1.0,
    "time_weight": 500 / 3600,  # 500 points per hour apart
    "region_weight": 500.0,
    "platform_weight": 200.0,
    "proposal_bonus": 10000000.0,
    "max_candidates": 5,
    "session_timeout": 30 * 60,  # seconds
    "confirm_timeout": 60 * 60,  # seconds
}

# Scrim constants
RANK_SCALE = 1000  # "4.3k" == 4300
MAX_SELECT_OPTIONS = 25  # discord limit per select menu
SELECT_LABEL_LIMIT = 100
TIMEZONE_AUTOCOMPLETE_LIMIT = 10
RELATIVE_TIME_WINDOW = 24 * 60 * 60  # show "in 3 hours" style timestamps inside this window

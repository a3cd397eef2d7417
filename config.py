"""
config.py - Configuration and Constants
All application settings, defaults, and paths in one place
"""

import os
import sys

# -------------------------
# Application Info
# -------------------------
APP_NAME = "VocabTree"

# -------------------------
# Directory Setup
# -------------------------
def get_data_dir(app_name=APP_NAME) -> str:
    """Get platform-specific data directory"""
    override = os.getenv("VOCABTREE_DATA_DIR")
    if override:
        os.makedirs(override, exist_ok=True)
        return override

    home = os.path.expanduser("~")
    if sys.platform.startswith("win"):
        base = os.getenv("APPDATA") or home
        path = os.path.join(base, app_name)
    elif sys.platform == "darwin":
        path = os.path.join(home, "Library", "Application Support", app_name)
    else:
        path = os.path.join(home, f".{app_name.lower()}")
    os.makedirs(path, exist_ok=True)
    return path

DATA_DIR = get_data_dir(APP_NAME)
CONFIG_PATH = os.path.join(DATA_DIR, "config.json")
LOG_DIR = os.path.join(DATA_DIR, "logs")

# -------------------------
# Default Configuration
# -------------------------
DEFAULT_CONFIG = {
    "api_base_url": os.getenv("VOCABTREE_API_URL", "http://localhost:8000"),
    "auth_token": "",
    "request_timeout": 15,  # seconds per remote call
    "success_message_seconds": 3,  # how long "moved successfully" stays up
    "max_concurrent_moves": 0,  # moves in flight across all items, 0 = unbounded
    "log_level": "INFO",
}

# -------------------------
# Messages
# -------------------------
MSG_MOVE_FAILED = "Failed to move item"
MSG_RENAME_FAILED = "Failed to rename item"
MSG_DELETE_FAILED = "Failed to delete item"
MSG_ADD_FAILED = "Failed to add item"
MSG_LOAD_FAILED = "Failed to load categories"

"""
config_manager.py - Configuration Management
Loads config.json, filling in any keys added since it was written.
"""

import json
import logging
import os
from typing import Dict

from config import CONFIG_PATH, DEFAULT_CONFIG
from utils import save_json_atomic

logger = logging.getLogger(__name__)


def ensure_config(path: str = CONFIG_PATH):
    """Ensure config file exists with default values"""
    if not os.path.exists(path):
        save_json_atomic(path, DEFAULT_CONFIG)


def load_config(path: str = CONFIG_PATH) -> Dict:
    """
    Load configuration from disk with migration support

    Returns:
        Configuration dictionary
    """
    try:
        ensure_config(path)
        with open(path, "r", encoding="utf-8") as f:
            cfg = json.load(f)

        if not isinstance(cfg, dict):
            raise ValueError("config.json must hold a JSON object")

        updated = False

        # Ensure all top-level keys exist
        for k, v in DEFAULT_CONFIG.items():
            if k not in cfg:
                cfg[k] = v
                updated = True

        if updated:
            save_config(cfg, path)

        return cfg
    except (OSError, ValueError) as e:
        logger.warning("Config at %s unreadable (%s); resetting to defaults", path, e)
        save_json_atomic(path, DEFAULT_CONFIG)
        return DEFAULT_CONFIG.copy()


def save_config(cfg: Dict, path: str = CONFIG_PATH):
    """
    Save configuration to disk

    Args:
        cfg: Configuration dictionary to save
    """
    save_json_atomic(path, cfg)

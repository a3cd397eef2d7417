"""
utils.py - General Utility Functions
Helper functions used throughout the application
"""

import json
import os


def save_json_atomic(path: str, data):
    tmp = path + ".tmp"
    with open(tmp, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
    os.replace(tmp, path)


def pluralize(count: int, word: str) -> str:
    """'1 card', '2 cards'"""
    return f"{count} {word}{'' if count == 1 else 's'}"

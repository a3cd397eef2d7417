"""
version.py - Application Version Information
Central location for version tracking
"""

# -------------------------
# Version Information
# -------------------------
VERSION = "1.0.0"
RELEASE_TYPE = "beta"  # "alpha", "beta", "stable"

# Application metadata
APP_DISPLAY_NAME = "VocabTree"
APP_DESCRIPTION = "Vocabulary organizer with category, folder and card trees"


def get_version_string() -> str:
    """Get formatted version string for display"""
    if RELEASE_TYPE == "stable":
        return f"v{VERSION}"
    else:
        return f"v{VERSION} ({RELEASE_TYPE})"

"""Constants for treeissues."""

from __future__ import annotations

import re


def parse_tags(raw: str) -> list[str]:
    """Parse a tags string that may be comma-separated, space-separated, or both.

    Examples:
        "bug,ui"     -> ["bug", "ui"]
        "bug ui"     -> ["bug", "ui"]
        "bug, ui"    -> ["bug", "ui"]
        ""           -> []
    """
    return [tag for tag in re.split(r"[,\s]+", raw) if tag]


# Store location
STORE_DIRNAME = ".treeissues"
STORE_FILENAME = "issues.jsonl"
LOCK_FILENAME = ".issues.lock"
CONFIG_FILENAME = "config.toml"

# Environment overrides
ENV_STORE_DIR = "TREEISSUES_DIR"
ENV_LOG_LEVEL = "TREEISSUES_LOG_LEVEL"

# Web server defaults
DEFAULT_WEB_HOST = "127.0.0.1"
DEFAULT_WEB_PORT = 48050
# Browser origins allowed to call the HTTP API
DEFAULT_CORS_ORIGINS = ("*",)

# Progressive ID length scaling thresholds
# Tuple of (max_issue_count, id_length)
# IDs scale: 6 chars for 0-1000 issues, 7 for 1001-10000, 8 for 10001-100000
ID_LENGTH_THRESHOLDS = (
    (1000, 6),
    (10000, 7),
    (100000, 8),
)
ID_LENGTH_MAX = 9

# Color mappings for CLI display
STATUS_COLORS = {
    "open": "bright_blue",
    "in_progress": "yellow",
    "resolved": "bright_green",
    "closed": "bright_black",
}

PRIORITY_COLORS = {
    "low": "green",
    "medium": "yellow",
    "high": "bright_red",
    "urgent": "red",
}

STATUS_SYMBOLS = {
    "open": "●",
    "in_progress": "◐",
    "resolved": "✓",
    "closed": "■",
}

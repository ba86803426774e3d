from __future__ import annotations

import json
import logging
import os
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

# --- Configuration ---
SITE_NAME = "LOSTLIBRARY"
SITE_URL = "https://lostlibrary.app"
HTTP_TIMEOUT = 15
READ_WORDS_PER_MINUTE = 200
SHARE_DESCRIPTION_LIMIT = 200

CONFIG_PATH = os.path.expanduser("~/.config/lostlibrary/config.json")
STORAGE_PATH = os.path.expanduser("~/.config/lostlibrary/storage.json")

SUPABASE_URL_ENV = "SUPABASE_URL"
SUPABASE_KEY_ENV = "SUPABASE_ANON_KEY"

REQUEST_HEADERS = {
    "User-Agent": "lostlibrary-tui/0.1",
    "Accept": "application/json",
}

# Category slug -> label, in display order.
CATEGORIES = {
    "ancient-history": "Ancient History",
    "medieval-period": "Medieval Period",
    "renaissance": "Renaissance",
    "early-modern-period": "Early Modern Period",
    "industrial-age": "Industrial Age",
    "20th-century": "20th Century",
    "world-wars": "World Wars",
    "cold-war-era": "Cold War Era",
    "modern-history": "Modern History",
}

# Default UI settings
UI_DEFAULTS = {
    "statusbar_keybindings": (
        "[b {color}]f[/] favorite, [b {color}]a[/] accounts, "
        "[b {color}]ctrl+l[/] toggle categories"
    ),
}

DEFAULT_CONFIG: Dict[str, Any] = {
    "theme": "dracula",
    "supabase": {"url": "", "anon_key": ""},
    "ui": {},
}

# --- Logging ---
logger = logging.getLogger("lostlibrary")


def setup_logging(debug: bool = False) -> Optional[str]:
    """Configure logging."""
    if not debug:
        logging.basicConfig(level=logging.CRITICAL, handlers=[logging.NullHandler()])
        return None

    ts = datetime.now().strftime("%Y%m%dT%H%M%S")
    pid = os.getpid()
    debug_path = f"/tmp/lostlibrary_debug_{ts}_{pid}.log"

    logging.basicConfig(
        level=logging.DEBUG,
        filename=debug_path,
        filemode="a",
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    )

    logger.debug("Debug logging enabled to %s", debug_path)
    return debug_path


def ensure_config_file_exists(path: str = CONFIG_PATH) -> None:
    """Write the default config file if the user's config file is not found."""
    if os.path.exists(path):
        return
    logger.info("Config file not found at %s, creating default.", path)
    try:
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "w") as f:
            json.dump(DEFAULT_CONFIG, f, indent=2)
    except (IOError, OSError) as e:
        logger.error("Failed to create default config file: %s", e)


def load_config(path: str = CONFIG_PATH) -> Dict[str, Any]:
    """Load the main configuration file."""
    ensure_config_file_exists(path)
    try:
        with open(path, "r") as f:
            config = json.load(f)
            logger.info("Loaded config from %s", path)
            return config
    except (IOError, json.JSONDecodeError) as e:
        logger.error("Failed to load config from %s: %s", path, e)
        return {}


def save_config(config: Dict[str, Any], path: str = CONFIG_PATH) -> None:
    """Save the main configuration file."""
    try:
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "w") as f:
            json.dump(config, f, indent=2)
        logger.info("Saved config to %s", path)
    except IOError as e:
        logger.error("Failed to save config to %s: %s", path, e)


def backend_settings(config: Dict[str, Any]) -> Tuple[str, str]:
    """Return (url, anon_key). Environment variables win over the config file."""
    section = config.get("supabase", {}) or {}
    url = os.environ.get(SUPABASE_URL_ENV) or section.get("url") or ""
    key = os.environ.get(SUPABASE_KEY_ENV) or section.get("anon_key") or ""
    if not url or not key:
        logger.error(
            "Missing Supabase settings. Set %s and %s or fill the 'supabase' "
            "section of %s.",
            SUPABASE_URL_ENV,
            SUPABASE_KEY_ENV,
            CONFIG_PATH,
        )
    return url.rstrip("/"), key


def storage_path(config: Dict[str, Any]) -> str:
    return os.path.expanduser(config.get("storage_path") or STORAGE_PATH)

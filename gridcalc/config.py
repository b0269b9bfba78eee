"""Runtime settings, read from the environment at call time.

A .env file in the app-data directory is loaded first, then one in the
current working directory (dev).
"""

import logging
import os
import sys

from dotenv import load_dotenv

APP_NAME = "gridcalc"


def get_app_data_dir() -> str:
    """Return a user-writable data directory for gridcalc (created if absent)."""
    if sys.platform == "win32":
        base = os.environ.get("APPDATA") or os.path.expanduser("~")
    elif sys.platform == "darwin":
        base = os.path.expanduser("~/Library/Application Support")
    else:
        base = os.environ.get("XDG_DATA_HOME") or os.path.expanduser("~/.local/share")
    app_dir = os.path.join(base, APP_NAME)
    os.makedirs(app_dir, exist_ok=True)
    return app_dir


def load_env() -> None:
    load_dotenv(os.path.join(get_app_data_dir(), ".env"))
    load_dotenv()


def default_rows() -> int:
    return int(os.getenv("GRIDCALC_DEFAULT_ROWS", "20"))


def default_cols() -> int:
    return int(os.getenv("GRIDCALC_DEFAULT_COLS", "10"))


def db_path() -> str:
    return os.getenv("GRIDCALC_DB_PATH") or os.path.join(get_app_data_dir(), f"{APP_NAME}.db")


def storage_key() -> str:
    return os.getenv("GRIDCALC_STORAGE_KEY", "spreadsheetData")


def log_level() -> str:
    return os.getenv("GRIDCALC_LOG_LEVEL", "INFO").upper()


def configure_logging() -> None:
    logging.basicConfig(
        level=log_level(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

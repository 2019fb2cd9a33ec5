"""Configuration management, read from the environment (and .env)."""
import logging
import os
from typing import Optional, Tuple

from dotenv import load_dotenv

load_dotenv()

PLACEHOLDER_KEY = "your_api_key_here"
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def _key(name: str) -> Optional[str]:
    """Environment secret, treating blanks and the .env placeholder as unset"""
    value = os.getenv(name, "").strip()
    if not value or value == PLACEHOLDER_KEY:
        return None
    return value


def _int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


def get_google_maps_api_key() -> Optional[str]:
    return _key("GOOGLE_MAPS_API_KEY")


def get_isochrone_config() -> dict:
    """Which isochrone provider to use and the credentials for each"""
    return {
        "provider": os.getenv("ISOCHRONE_PROVIDER", "mapbox").strip().lower(),
        "mapbox_token": _key("MAPBOX_TOKEN"),
        "ors_api_key": _key("ORS_API_KEY"),
        "timeout": _int("PROVIDER_TIMEOUT_SECONDS", 10),
    }


def get_planner_config() -> dict:
    categories = os.getenv("DEFAULT_POI_TYPES", "coffee,meal,beer")
    return {
        "default_budget_minutes": _int("DEFAULT_BUDGET_MINUTES", 30),
        "max_results": _int("MAX_VENUES", 50),
        "default_poi_types": tuple(c.strip() for c in categories.split(",") if c.strip()),
        "strategy": os.getenv("BUDGET_SEARCH_STRATEGY", "binary").strip().lower(),
    }


def get_server_address() -> Tuple[str, int]:
    return os.getenv("HOST", "0.0.0.0"), _int("PORT", 5001)


def configure_logging(level: Optional[str] = None, log_file: Optional[str] = None) -> None:
    """Stream handler always, file handler when LOG_FILE (or log_file) is set"""
    level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    log_file = log_file or os.getenv("LOG_FILE")
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
    )

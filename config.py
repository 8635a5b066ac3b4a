"""
Application configuration management.

Loads non-sensitive configuration from JSON and sensitive values
(e.g. Gemini API key) from environment variables or secret files.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from llm_handler import API_KEY_PREFIX, is_valid_api_key
from web_scraper import FetchOptions

LOGGER = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("job_links_config.json")
DEFAULT_JOB_LINKS_FILE = Path("output") / "JobLinks.xlsx"
DEFAULT_GEMINI_MODEL = "gemini-1.5-flash"


@dataclass(frozen=True)
class Settings:
    """Container for application configuration."""

    job_links_file: Path
    log_file: Optional[Path]
    log_format: Optional[str]
    log_date_format: Optional[str]
    debug: bool
    gemini_api_key: str
    gemini_model: str
    fetch: FetchOptions
    max_content_chars: int
    request_delay: float
    request_timeout: float
    classify_attempts: int
    write_retries: int
    write_retry_delay: float


def _read_json(path: Path) -> Dict[str, Any]:
    """Read a JSON file into a dictionary."""
    try:
        with path.open("r", encoding="utf-8") as handle:
            return json.load(handle)
    except FileNotFoundError:
        raise FileNotFoundError(f"Configuration file missing: {path}") from None
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in configuration file: {path}") from exc


def _resolve_path(base: Path, value: Optional[str]) -> Optional[Path]:
    """Resolve a possibly relative path against a base directory."""
    if not value:
        return None
    candidate = Path(value)
    return candidate if candidate.is_absolute() else (base / candidate).resolve()


def _load_secret(base: Path, key_path: Optional[str]) -> Optional[str]:
    """Load a secret value from a text file."""
    if not key_path:
        return None
    secret_file = _resolve_path(base, key_path)
    if secret_file and secret_file.exists():
        return secret_file.read_text(encoding="utf-8").strip()
    LOGGER.warning("Secret file %s not found; skipping", secret_file)
    return None


def _number(config: Dict[str, Any], key: str, default: float, allow_zero: bool = False) -> float:
    """Read a numeric option, rejecting negative (and optionally zero) values."""
    try:
        value = float(config.get(key, default))
    except (TypeError, ValueError):
        raise ValueError(f"Config '{key}' must be a number.") from None
    if value < 0 or (value == 0 and not allow_zero):
        raise ValueError(f"Config '{key}' must be > 0." if not allow_zero else f"Config '{key}' must be >= 0.")
    return value


def _api_key(config: Dict[str, Any], base_dir: Path) -> str:
    """Secret file named by ``google_api_key_file`` first, then ``GEMINI_API_KEY``."""
    secret_key = _load_secret(base_dir, config.get("google_api_key_file"))
    return secret_key or os.environ.get("GEMINI_API_KEY", "").strip()


def read_api_key(config_path: Path = DEFAULT_CONFIG_PATH) -> str:
    """Resolve the Gemini API key without validating the rest of the config."""
    config_path = config_path.resolve()
    config = _read_json(config_path) if config_path.exists() else {}
    return _api_key(config, config_path.parent)


def load_settings(config_path: Path = DEFAULT_CONFIG_PATH) -> Settings:
    """
    Load application settings from config file and environment variables.

    Args:
        config_path: Path to the JSON configuration file.

    Returns:
        Settings dataclass populated with configuration values.
    """
    config_path = config_path.resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    config = _read_json(config_path)
    base_dir = config_path.parent

    job_links_file = _resolve_path(base_dir, config.get("job_links_file"))
    if job_links_file is None:
        job_links_file = (base_dir / DEFAULT_JOB_LINKS_FILE).resolve()

    log_file_str = config.get("log_file")
    if log_file_str:
        # Replace timestamp placeholder if present
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file_str = log_file_str.replace("YYYYMMDD_HHMMSS", timestamp)
        log_file = _resolve_path(base_dir, log_file_str)
        log_file.parent.mkdir(parents=True, exist_ok=True)
    else:
        log_file = None

    api_key = _api_key(config, base_dir)
    if not api_key:
        LOGGER.warning(
            "Gemini API key missing. Set GEMINI_API_KEY env or provide google_api_key_file; "
            "jobs will get default classifications."
        )
    elif not is_valid_api_key(api_key):
        raise ValueError(f"Invalid Gemini API key format. Key should start with '{API_KEY_PREFIX}'.")

    fetch = FetchOptions(
        headless=bool(config.get("headless", True)),
        page_load_timeout=_number(config, "page_load_timeout", 300.0),
        settle_seconds=_number(config, "settle_seconds", 12.0, allow_zero=True),
        scroll_cycles=int(_number(config, "scroll_cycles", 10, allow_zero=True)),
        scroll_pause=_number(config, "scroll_pause", 2.0, allow_zero=True),
        save_html=bool(config.get("save_html", False)),
    )

    return Settings(
        job_links_file=job_links_file,
        log_file=log_file,
        log_format=config.get("log_format"),
        log_date_format=config.get("log_date_format"),
        debug=bool(config.get("debug", False)),
        gemini_api_key=api_key,
        gemini_model=config.get("gemini_model", DEFAULT_GEMINI_MODEL),
        fetch=fetch,
        max_content_chars=int(_number(config, "max_content_chars", 12000)),
        request_delay=_number(config, "request_delay", 0.5, allow_zero=True),
        request_timeout=_number(config, "request_timeout", 30.0),
        classify_attempts=max(1, int(_number(config, "classify_attempts", 3))),
        write_retries=max(1, int(_number(config, "write_retries", 5))),
        write_retry_delay=_number(config, "write_retry_delay", 1.5, allow_zero=True),
    )

"""
CLI entry point for the job-links analyzer.
"""

from __future__ import annotations

import logging
import sys

from analyzer import JobLinkAnalyzer
from config import DEFAULT_CONFIG_PATH, load_settings
from table_store import MissingColumnError, TableBusyError

EXIT_OK = 0
EXIT_SETUP_ERROR = 1
EXIT_INPUT_ERROR = 2
EXIT_TABLE_BUSY = 3


class TruncatingFormatter(logging.Formatter):
    """Formatter that truncates log messages to a maximum length."""

    def __init__(self, max_length: int = 200, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.max_length = max_length

    def format(self, record):
        formatted = super().format(record)
        if len(formatted) > self.max_length:
            formatted = formatted[:self.max_length] + "... (truncated)"
        return formatted


def configure_logging(settings) -> None:
    """
    Configure logging according to settings.

    Args:
        settings: Application settings dataclass.
    """
    log_format = settings.log_format or "%(asctime)s [%(levelname)s] %(message)s"
    datefmt = settings.log_date_format or "%Y-%m-%d %H:%M:%S"

    console_formatter = TruncatingFormatter(max_length=200, fmt=log_format, datefmt=datefmt)
    file_formatter = logging.Formatter(fmt=log_format, datefmt=datefmt)

    handlers = []
    if settings.log_file:
        file_handler = logging.FileHandler(settings.log_file, encoding="utf-8")
        file_handler.setFormatter(file_formatter)
        handlers.append(file_handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(console_formatter)
    handlers.append(console_handler)

    log_level = logging.DEBUG if settings.debug else logging.INFO
    logging.basicConfig(level=log_level, handlers=handlers, force=True)

    # Suppress verbose HTTP and driver logging
    for noisy in ("urllib3", "selenium", "httpcore", "httpx"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def main() -> None:
    """Analyze every link in the job-links workbook."""
    try:
        settings = load_settings(DEFAULT_CONFIG_PATH)
    except (FileNotFoundError, ValueError) as exc:
        logging.error("Configuration error: %s", exc)
        sys.exit(EXIT_SETUP_ERROR)

    configure_logging(settings)
    logging.info("Starting job-links analysis")
    logging.info(
        "Configuration: table=%s, model=%s, delay=%.1fs",
        settings.job_links_file,
        settings.gemini_model,
        settings.request_delay,
    )

    try:
        path = JobLinkAnalyzer(settings).run()
    except FileNotFoundError as exc:
        logging.error("Input table error: %s", exc)
        sys.exit(EXIT_INPUT_ERROR)
    except MissingColumnError as exc:
        logging.error("Input table error: %s", exc)
        sys.exit(EXIT_INPUT_ERROR)
    except TableBusyError as exc:
        logging.error("Could not save progress: %s", exc)
        sys.exit(EXIT_TABLE_BUSY)
    except Exception as exc:
        logging.exception("Fatal error occurred: %s", exc)
        sys.exit(EXIT_SETUP_ERROR)

    logging.info("Finished run successfully. Results: %s", path)
    sys.exit(EXIT_OK)


if __name__ == "__main__":
    main()

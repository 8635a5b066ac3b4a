"""
Core pipeline coordinating link normalisation, page fetching, LLM
classification and per-row persistence of the job-links table.
"""

from __future__ import annotations

import logging
import time
from datetime import date
from pathlib import Path
from typing import Callable, List, Optional

from data_models import Classification, JobLinkRow, Table
from link_normalizer import normalize_link
from llm_handler import GeminiClassifier
from table_store import LINK_COLUMN, TITLE_COLUMN, load_table, save_table
from web_scraper import fetch_page_text

LOGGER = logging.getLogger(__name__)

DEFAULT_STATUS = "Not Applied"


def format_run_date(day: date) -> str:
    """Render a date as M/D/YYYY."""
    return f"{day.month}/{day.day}/{day.year}"


def _cell(row: JobLinkRow, key: str) -> str:
    value = row.get(key)
    return "" if value is None else str(value).strip()


def merge_row(
    row: JobLinkRow, classification: Classification, link: str, run_date: str
) -> JobLinkRow:
    """
    Flatten a classification into the row's output columns.

    Existing columns keep their position; new ones are appended.
    """
    merged = dict(row)
    merged.update(
        {
            "Date": run_date,
            "Status": DEFAULT_STATUS,
            "Link": link,
            "Remote": classification.remote,
            "BestStack": classification.best_stack,
            "AllPossibleStacks": ", ".join(classification.all_possible_stacks),
            "SecretRequired": "Yes" if classification.has_special_phrase else "No",
            "GovernanceAndSecurityPhrases": "; ".join(classification.matched_special_phrases),
            "Industry": classification.industry,
            "AnnualSalary": classification.annual_salary,
            "Level": classification.level,
        }
    )
    return merged


def build_snapshot(table: Table, processed: List[JobLinkRow]) -> Table:
    """
    Combine the merged prefix with the untouched remainder of the table.

    Args:
        table: Table as loaded at the start of the run.
        processed: Merged rows for ``table.rows[:len(processed)]``.

    Returns:
        New Table whose header follows the first merged row.
    """
    if not processed:
        return Table(table.sheet_name, list(table.headers), list(table.rows))

    headers = list(processed[0].keys())
    remainder = [
        {header: ("" if row.get(header) is None else row.get(header, "")) for header in headers}
        for row in table.rows[len(processed):]
    ]
    return Table(table.sheet_name, headers, list(processed) + remainder)


class JobLinkAnalyzer:
    """Runs the scrape, classify and persist loop over the job-links table."""

    def __init__(
        self,
        settings,
        classifier: Optional[GeminiClassifier] = None,
        fetcher: Optional[Callable[[str], str]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """
        Initialize the analyzer.

        Args:
            settings: Application settings dataclass.
            classifier: Object with ``classify(title, text)``; a Gemini
                classifier is built from settings when omitted.
            fetcher: Callable returning a page's visible text.
            sleep: Sleep function used for pacing (injectable for tests).
        """
        self.settings = settings
        self.classifier = classifier or GeminiClassifier(
            settings.gemini_api_key,
            settings.gemini_model,
            request_timeout=settings.request_timeout,
            max_attempts=settings.classify_attempts,
        )
        self.fetcher = fetcher or (lambda url: fetch_page_text(url, settings.fetch))
        self._sleep = sleep

    def analyze_row(self, row: JobLinkRow, run_date: str) -> JobLinkRow:
        """
        Fetch, classify and merge a single row.

        Rows without a link get the default classification and no
        network calls.
        """
        link = _cell(row, LINK_COLUMN)
        title = _cell(row, TITLE_COLUMN)
        classification = Classification.default()
        canonical = ""

        if link:
            LOGGER.debug("State normalizing: %s", link)
            canonical = normalize_link(link)
            LOGGER.debug("State fetching: %s", canonical)
            page_text = self.fetcher(canonical) or ""
            if not page_text:
                LOGGER.warning("No page content for %s; classifying from title only", canonical)
            LOGGER.debug("State classifying: %s", title)
            classification = self.classifier.classify(
                title, page_text[: self.settings.max_content_chars]
            )
        else:
            LOGGER.info("Row has no link; recording default classification")

        return merge_row(row, classification, canonical or link, run_date)

    def run(self, path: Optional[Path] = None) -> Path:
        """
        Execute the pipeline over every row of the table.

        The whole table is rewritten after each row, so an interrupted run
        leaves rows ``0..i`` analysed and the rest untouched on disk.

        Args:
            path: Workbook to analyse; defaults to the configured file.

        Returns:
            Path of the persisted workbook.

        Raises:
            FileNotFoundError: If the workbook does not exist.
            MissingColumnError: If the workbook has no ``Link`` column.
            TableBusyError: If the workbook stays locked through every retry.
        """
        path = path or self.settings.job_links_file
        table = load_table(path)
        run_date = format_run_date(date.today())
        processed: List[JobLinkRow] = []
        total = len(table.rows)

        for index, row in enumerate(table.rows):
            LOGGER.info(
                "Analyzing job %d/%d: %s", index + 1, total, _cell(row, TITLE_COLUMN) or "(untitled)"
            )
            processed.append(self.analyze_row(row, run_date))

            save_table(
                path,
                build_snapshot(table, processed),
                attempts=self.settings.write_retries,
                retry_delay=self.settings.write_retry_delay,
                sleep=self._sleep,
            )
            LOGGER.debug("State persisted: row %d", index + 1)

            if index < total - 1:
                self._sleep(self.settings.request_delay)

        LOGGER.info("Analyzed %d job links; results in %s", total, path)
        return path

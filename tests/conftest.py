"""Shared fixtures: settings, workbook helpers and fake collaborators."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List

import openpyxl
import pytest

from config import Settings
from data_models import Classification
from web_scraper import FetchOptions


def write_workbook(path: Path, headers: List[str], rows: List[List[Any]], sheet_name: str = "Jobs") -> Path:
    """Create a single-sheet workbook with a header row."""
    workbook = openpyxl.Workbook()
    sheet = workbook.active
    sheet.title = sheet_name
    sheet.append(headers)
    for row in rows:
        sheet.append(row)
    workbook.save(path)
    return path


def read_workbook(path: Path) -> List[Dict[str, Any]]:
    """Read the first sheet back as row dicts (None cells become '')."""
    workbook = openpyxl.load_workbook(path)
    sheet = workbook.worksheets[0]
    rows = list(sheet.iter_rows(values_only=True))
    headers = list(rows[0])
    return [
        {header: ("" if value is None else value) for header, value in zip(headers, row)}
        for row in rows[1:]
    ]


class FakeClassifier:
    """Records calls and returns a fixed classification."""

    def __init__(self, result: Classification = None) -> None:
        self.result = result or Classification.default()
        self.calls = []

    def classify(self, title: str, page_text: str) -> Classification:
        self.calls.append((title, page_text))
        return self.result


class FakeFetcher:
    """Records fetched URLs and returns canned page text."""

    def __init__(self, text: str = "page text") -> None:
        self.text = text
        self.urls = []

    def __call__(self, url: str) -> str:
        self.urls.append(url)
        return self.text


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        job_links_file=tmp_path / "JobLinks.xlsx",
        log_file=None,
        log_format=None,
        log_date_format=None,
        debug=False,
        gemini_api_key="",
        gemini_model="gemini-1.5-flash",
        fetch=FetchOptions(settle_seconds=0, scroll_cycles=0, scroll_pause=0),
        max_content_chars=12000,
        request_delay=0.5,
        request_timeout=30.0,
        classify_attempts=3,
        write_retries=5,
        write_retry_delay=1.5,
    )

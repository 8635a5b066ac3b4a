"""Tests for page rendering with a mocked Chrome driver."""

from __future__ import annotations

from unittest import mock

import pytest
from selenium.common.exceptions import TimeoutException, WebDriverException

import web_scraper
from web_scraper import BODY_TEXT_SCRIPT, SCROLL_SCRIPT, FetchOptions, fetch_page_text

FAST = FetchOptions(settle_seconds=0, scroll_cycles=3, scroll_pause=0)


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    monkeypatch.setattr(web_scraper.time, "sleep", lambda _: None)


@pytest.fixture
def driver(monkeypatch):
    fake = mock.MagicMock()
    monkeypatch.setattr(web_scraper, "_create_driver", lambda options: fake)
    return fake


def _body_texts(driver, texts):
    """Answer BODY_TEXT_SCRIPT calls with ``texts`` in order; ignore scrolls."""
    remaining = iter(texts)

    def execute_script(script, *args):
        if script == BODY_TEXT_SCRIPT:
            value = next(remaining)
            if isinstance(value, Exception):
                raise value
            return value
        return None

    driver.execute_script.side_effect = execute_script


def test_main_document_and_iframes_are_joined(driver):
    driver.find_elements.return_value = [mock.sentinel.frame_a, mock.sentinel.frame_b, mock.sentinel.frame_c]
    _body_texts(driver, ["Main page", "Job description in ATS widget", "   ", ""])

    text = fetch_page_text("https://x.com/job/1", FAST)

    assert text == "Main page\n\nJob description in ATS widget"
    driver.get.assert_called_once_with("https://x.com/job/1")
    assert driver.switch_to.frame.call_count == 3
    assert driver.switch_to.default_content.call_count == 3
    driver.quit.assert_called_once()


def test_page_is_scrolled_before_extraction(driver):
    driver.find_elements.return_value = []
    _body_texts(driver, ["Main page"])

    fetch_page_text("https://x.com/job/1", FAST)

    scrolls = [c for c in driver.execute_script.call_args_list if c.args[0] == SCROLL_SCRIPT]
    assert len(scrolls) == 3


def test_unreadable_iframe_is_skipped(driver):
    driver.find_elements.return_value = [mock.sentinel.frame_a, mock.sentinel.frame_b]
    _body_texts(driver, ["Main", WebDriverException("cross-origin"), "Widget"])

    assert fetch_page_text("https://x.com/job/1", FAST) == "Main\n\nWidget"


def test_navigation_failure_returns_empty_text_and_quits(driver):
    driver.get.side_effect = TimeoutException("page load timeout")

    assert fetch_page_text("https://slow.example.com", FAST) == ""
    driver.quit.assert_called_once()


def test_driver_start_failure_returns_empty_text(monkeypatch):
    def broken(options):
        raise WebDriverException("chrome not found")

    monkeypatch.setattr(web_scraper, "_create_driver", broken)

    assert fetch_page_text("https://x.com/job/1", FAST) == ""


def test_html_snapshot_is_saved_when_enabled(driver, tmp_path, monkeypatch):
    monkeypatch.setattr(web_scraper, "SNAPSHOT_DIR", tmp_path / "debug_pages")
    driver.find_elements.return_value = []
    driver.page_source = "<html><body>Main</body></html>"
    _body_texts(driver, ["Main"])

    fetch_page_text("https://x.com/job/1", FetchOptions(settle_seconds=0, scroll_cycles=0, save_html=True))

    snapshots = list((tmp_path / "debug_pages").glob("*.html"))
    assert len(snapshots) == 1
    assert "Main" in snapshots[0].read_text(encoding="utf-8")


def test_create_driver_sets_browser_identity(monkeypatch):
    chrome = mock.MagicMock()
    monkeypatch.setattr(web_scraper.webdriver, "Chrome", chrome)

    web_scraper._create_driver(FetchOptions(page_load_timeout=90))

    options = chrome.call_args.kwargs["options"]
    assert "--headless=new" in options.arguments
    assert "--window-size=1280,800" in options.arguments
    assert any(arg.startswith("user-agent=Mozilla/5.0") for arg in options.arguments)
    chrome.return_value.set_page_load_timeout.assert_called_once_with(90)

"""
Rendering job pages in headless Chrome and extracting their visible text.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from selenium import webdriver
from selenium.common.exceptions import WebDriverException
from selenium.webdriver.chrome.options import Options
from selenium.webdriver.common.by import By

LOGGER = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
BODY_TEXT_SCRIPT = "return document.body && document.body.innerText ? document.body.innerText : '';"
SCROLL_SCRIPT = "window.scrollBy(0, arguments[0]);"
SCROLL_STEP_PX = 3000
SNAPSHOT_DIR = Path("debug_pages")


@dataclass(frozen=True)
class FetchOptions:
    """Tunables for a single page render."""

    headless: bool = True
    page_load_timeout: float = 300.0
    settle_seconds: float = 12.0
    scroll_cycles: int = 10
    scroll_pause: float = 2.0
    save_html: bool = False


def _create_driver(options: FetchOptions) -> webdriver.Chrome:
    """
    Create and configure a Chrome WebDriver with a desktop browser identity.

    Args:
        options: Fetch tunables.

    Returns:
        Configured Chrome WebDriver instance.
    """
    chrome_options = Options()
    if options.headless:
        chrome_options.add_argument("--headless=new")
    chrome_options.add_argument("--no-sandbox")
    chrome_options.add_argument("--disable-dev-shm-usage")
    chrome_options.add_argument("--disable-gpu")
    chrome_options.add_argument("--disable-blink-features=AutomationControlled")
    chrome_options.add_argument("--window-size=1280,800")
    chrome_options.add_argument("--lang=en-US")
    chrome_options.add_argument(f"user-agent={USER_AGENT}")

    try:
        driver = webdriver.Chrome(options=chrome_options)
    except WebDriverException as exc:
        LOGGER.error("Failed to initialize Chrome WebDriver: %s", exc)
        raise
    driver.set_page_load_timeout(options.page_load_timeout)
    return driver


def _scroll_page(driver: webdriver.Chrome, cycles: int, pause: float) -> None:
    """Scroll down repeatedly so lazily loaded sections get rendered."""
    for _ in range(cycles):
        driver.execute_script(SCROLL_SCRIPT, SCROLL_STEP_PX)
        time.sleep(pause)


def _frame_texts(driver: webdriver.Chrome) -> List[str]:
    """Collect visible text from every iframe on the current page."""
    texts: List[str] = []
    frames = driver.find_elements(By.TAG_NAME, "iframe")
    LOGGER.debug("Found %d iframes", len(frames))
    for frame in frames:
        try:
            driver.switch_to.frame(frame)
            text = driver.execute_script(BODY_TEXT_SCRIPT) or ""
            if text.strip():
                texts.append(text)
        except WebDriverException as exc:
            LOGGER.warning("Could not extract text from iframe: %s", exc.msg or exc)
        finally:
            driver.switch_to.default_content()
    return texts


def fetch_page_text(url: str, options: Optional[FetchOptions] = None) -> str:
    """
    Render a URL in Chrome and return its visible text.

    The main document's text comes first, followed by the text of each
    iframe, separated by blank lines.

    Args:
        url: Page to render.
        options: Fetch tunables; defaults are used when omitted.

    Returns:
        Extracted text, or an empty string if anything goes wrong.
    """
    options = options or FetchOptions()
    driver: Optional[webdriver.Chrome] = None
    try:
        driver = _create_driver(options)
        LOGGER.debug("Navigating to %s", url)
        driver.get(url)
        time.sleep(options.settle_seconds)
        _scroll_page(driver, options.scroll_cycles, options.scroll_pause)

        parts = [driver.execute_script(BODY_TEXT_SCRIPT) or ""]
        parts.extend(_frame_texts(driver))

        if options.save_html:
            _save_html_snapshot(driver, url)

        text = "\n\n".join(parts)
        LOGGER.info("Fetched %d chars from %s", len(text), url)
        return text
    except Exception as exc:
        LOGGER.warning("Failed to fetch %s: %s", url, exc)
        return ""
    finally:
        if driver:
            try:
                driver.quit()
            except WebDriverException as exc:
                LOGGER.debug("Failed to quit Chrome WebDriver: %s", exc)


def _save_html_snapshot(driver: webdriver.Chrome, url: str) -> None:
    """
    Save the current page HTML for debugging.

    Args:
        driver: Selenium WebDriver instance.
        url: Original URL for logging.
    """
    try:
        SNAPSHOT_DIR.mkdir(parents=True, exist_ok=True)
        snapshot_path = SNAPSHOT_DIR / f"{int(time.time())}.html"
        snapshot_path.write_text(driver.page_source, encoding="utf-8")
        LOGGER.debug("Saved HTML snapshot of %s to %s", url, snapshot_path)
    except OSError as exc:
        LOGGER.debug("Failed to save HTML snapshot: %s", str(exc)[:100])

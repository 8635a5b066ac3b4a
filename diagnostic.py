"""
Connectivity diagnostic for the Gemini classification service.

Usage: python diagnostic.py
"""

from __future__ import annotations

import logging
import os
import socket
import sys
from typing import Callable, Dict

import google.generativeai as genai

from config import DEFAULT_GEMINI_MODEL, read_api_key
from llm_handler import API_KEY_PREFIX, MIN_API_KEY_LENGTH, extract_text

LOGGER = logging.getLogger(__name__)

API_HOST = "generativelanguage.googleapis.com"
API_PORT = 443
CONNECT_TIMEOUT = 5.0

ICONS = {"success": "✓", "error": "✗", "warn": "⚠", "info": "ℹ"}


def report(status: str, message: str) -> None:
    print(f"{ICONS.get(status, ICONS['info'])} {message}")


def check_dns() -> bool:
    try:
        address = socket.gethostbyname(API_HOST)
    except OSError as exc:
        report("error", f"DNS Resolution failed: {exc}")
        return False
    report("success", f"DNS Resolution: {API_HOST} resolves to {address}")
    return True


def check_network() -> bool:
    try:
        with socket.create_connection((API_HOST, API_PORT), timeout=CONNECT_TIMEOUT):
            pass
    except socket.timeout:
        report("error", f"Network: Connection timeout ({CONNECT_TIMEOUT:.0f}s)")
        return False
    except OSError as exc:
        report("error", f"Network: Connection failed: {exc}")
        return False
    report("success", f"Network: Connection to {API_HOST}:{API_PORT} successful")
    return True


def check_api_key_format() -> bool:
    api_key = read_api_key()
    if not api_key:
        report("error", "Environment: neither google_api_key_file nor GEMINI_API_KEY is set")
        return False
    if not api_key.startswith(API_KEY_PREFIX):
        report(
            "error",
            f"API Key format: Key should start with '{API_KEY_PREFIX}', "
            f"but starts with '{api_key[:4]}'",
        )
        return False
    if len(api_key) < MIN_API_KEY_LENGTH:
        report("error", f"API Key format: Key is too short ({len(api_key)} chars)")
        return False
    report("success", f"API Key format: Valid format ({len(api_key)} characters)")
    return True


def check_api_round_trip() -> bool:
    api_key = read_api_key()
    if not api_key:
        report("error", "Gemini API test: Skipped (no API key)")
        return False

    model_name = os.environ.get("GEMINI_MODEL", DEFAULT_GEMINI_MODEL)
    try:
        genai.configure(api_key=api_key)
        model = genai.GenerativeModel(model_name)
        report("info", "Gemini API: Sending test request...")
        response = model.generate_content(
            'Respond with exactly: "Gemini connection successful"',
            generation_config={"temperature": 0.1, "max_output_tokens": 10},
            request_options={"timeout": 30},
        )
    except Exception as exc:
        report("error", f"Gemini API: {type(exc).__name__}: {exc}")
        return False

    report("success", "Gemini API: Authentication and connectivity working!")
    report("info", f"Response: {extract_text(response)}")
    return True


CHECKS: Dict[str, Callable[[], bool]] = {
    "dns": check_dns,
    "network": check_network,
    "api_key_format": check_api_key_format,
    "api_auth": check_api_round_trip,
}


def print_tips(results: Dict[str, bool]) -> None:
    print("\nTroubleshooting Tips:")
    if not results["dns"] or not results["network"]:
        print("  - Check your internet connection")
        print(f"  - If behind a firewall/proxy, ensure {API_HOST} is allowed")
    if not results["api_key_format"]:
        print("  - Verify GEMINI_API_KEY or the google_api_key_file in job_links_config.json")
        print("  - Create a key at https://aistudio.google.com/app/apikey")
    if results["api_key_format"] and not results["api_auth"]:
        print("  - The API key may be invalid, expired or lack access to the model")
        print("  - Check your quota and billing status")


def run_diagnostics() -> int:
    """Run every check and return the process exit code."""
    print("\n=== Gemini Connection Diagnostic ===\n")
    results = {name: check() for name, check in CHECKS.items()}

    print("\n=== Summary ===\n")
    if all(results.values()):
        report("success", "All checks passed! Your Gemini connection is working.")
        return 0
    report("warn", "Some checks failed. See details above for troubleshooting.")
    print_tips(results)
    return 1


if __name__ == "__main__":
    logging.basicConfig(level=logging.WARNING)
    sys.exit(run_diagnostics())

"""
LLM client wrapper for classifying job postings against a fixed taxonomy.
"""

from __future__ import annotations

import json
import logging
import re
import socket
from typing import Any, Dict, List, Optional

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from data_models import (
    NOT_AVAILABLE,
    STACKS,
    Classification,
    Industry,
    Level,
    RemoteMode,
    SalaryBucket,
    enum_values,
)
from retry import RetryPolicy, exponential_backoff

LOGGER = logging.getLogger(__name__)

API_KEY_PREFIX = "AIza"
MIN_API_KEY_LENGTH = 20

REMOTE_VALUES = enum_values(RemoteMode)
INDUSTRY_VALUES = enum_values(Industry)
SALARY_VALUES = enum_values(SalaryBucket)
LEVEL_VALUES = enum_values(Level)
LEVEL_ALIASES = {"Principle": Level.PRINCIPAL.value}

TRANSIENT_EXCEPTIONS = (
    ConnectionError,
    TimeoutError,
    socket.gaierror,
    google_exceptions.ServiceUnavailable,
    google_exceptions.DeadlineExceeded,
    google_exceptions.TooManyRequests,
    google_exceptions.ResourceExhausted,
    google_exceptions.Unauthenticated,
    google_exceptions.InternalServerError,
)

_FENCE_OPEN = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_FENCE_CLOSE = re.compile(r"\s*```$")

SYSTEM_PROMPT = f"""You are a strict JSON-only classifier for software job descriptions.

**Rule:** If any item cannot be clearly determined from the page content, output "N/A" for that field instead of an empty value. Do not guess.

You must extract the following:

0. **Work arrangement** ("remote")
   - "Remote" (fully remote, work from home, distributed)
   - "Hybrid" (mix of remote and on-site)
   - "On-site" (office-based, in-person)
   If the arrangement is not clearly stated, return "N/A".

1. **Stack classification** ("bestStack", "allPossibleStacks")
   Pick the ONE stack from this list that best matches the role, based only on the job title and description:
   {json.dumps(list(STACKS))}
   - List ALL matching stacks from the same list in "allPossibleStacks" (may be empty).
   - If no stack clearly matches, return "N/A" in "bestStack" and an empty "allPossibleStacks".

2. **Special phrase detection** ("hasSpecialPhrase", "matchedSpecialPhrases")
   Is the job associated with security clearance (Secret, Top Secret, TS/SCI, Public Trust, ...)
   or federal / government / DoD / public sector contracting?
   - Set "hasSpecialPhrase" to true only if such a phrase clearly appears, and list the phrases in "matchedSpecialPhrases".
   - Otherwise return false and an empty list.

3. **Industry** ("industry")
   - "finance" (banking, fintech, trading, investment, capital markets, payments, insurance)
   - "healthcare" (hospitals, clinical systems, EMR/EHR, HIPAA, medtech, patient data)
   If neither is clearly indicated, return "N/A".

4. **Annual salary** ("annualSalary"), exactly ONE of:
   - "30K <"  for $30,000 to under $60,000
   - "60K <"  for $60,000 to under $100,000
   - "100K <" for $100,000 to under $160,000
   - "160K <" for $160,000 to under $200,000
   - "200K <" for $200,000 and above
   For a range (e.g. $80k-$120k) use the middle value. If no salary is given, return "N/A".

5. **Level** ("level"), exactly ONE of:
   "Middle", "Senior", "Staff", "Principal", "Lead", "Architect".
   If the seniority cannot be determined, return "N/A".

Return ONLY valid JSON in exactly this structure (no markdown, no code block):

{{
  "remote": "",
  "bestStack": "",
  "allPossibleStacks": [],
  "hasSpecialPhrase": false,
  "matchedSpecialPhrases": [],
  "industry": "",
  "annualSalary": "",
  "level": ""
}}"""


def is_valid_api_key(api_key: Optional[str]) -> bool:
    """Check that a Gemini API key is present and syntactically plausible."""
    if not api_key:
        return False
    return api_key.startswith(API_KEY_PREFIX) and len(api_key) >= MIN_API_KEY_LENGTH


def is_transient_error(exc: BaseException) -> bool:
    """Return True for network, rate-limit and auth failures worth backing off on."""
    if isinstance(exc, TRANSIENT_EXCEPTIONS):
        return True
    message = str(exc)
    return "timeout" in message.lower() or "Connection" in message


def strip_code_fence(text: str) -> str:
    """Remove an optional ```json ... ``` wrapper from a model reply."""
    text = _FENCE_OPEN.sub("", text.strip())
    return _FENCE_CLOSE.sub("", text).strip()


def _choice(value: Any, allowed: tuple, aliases: Optional[Dict[str, str]] = None) -> str:
    if not isinstance(value, str):
        return NOT_AVAILABLE
    value = value.strip()
    if aliases and value in aliases:
        value = aliases[value]
    return value if value in allowed else NOT_AVAILABLE


def _string_list(value: Any, allowed: Optional[tuple] = None) -> List[str]:
    if not isinstance(value, list):
        return []
    items: List[str] = []
    for item in value:
        if not isinstance(item, str) or not item.strip():
            continue
        item = item.strip()
        if allowed is not None and item not in allowed:
            continue
        if item not in items:
            items.append(item)
    return items


def _flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"true", "yes"}
    return False


def validate_classification(payload: Dict[str, Any]) -> Classification:
    """
    Coerce an untrusted model reply into a Classification.

    Every field is checked against its closed vocabulary; missing or
    unknown values fall back to the field's default.

    Args:
        payload: Decoded JSON object from the model.

    Returns:
        Classification whose enum fields are all members of their sets.
    """
    return Classification(
        remote=_choice(payload.get("remote"), REMOTE_VALUES),
        best_stack=_choice(payload.get("bestStack"), STACKS),
        all_possible_stacks=_string_list(payload.get("allPossibleStacks"), STACKS),
        has_special_phrase=_flag(payload.get("hasSpecialPhrase")),
        matched_special_phrases=_string_list(payload.get("matchedSpecialPhrases")),
        industry=_choice(payload.get("industry"), INDUSTRY_VALUES),
        annual_salary=_choice(payload.get("annualSalary"), SALARY_VALUES),
        level=_choice(payload.get("level"), LEVEL_VALUES, LEVEL_ALIASES),
    )


def parse_reply(text: str) -> Classification:
    """
    Decode and validate a raw model reply.

    Raises:
        ValueError: If the reply is empty or not a JSON object.
    """
    cleaned = strip_code_fence(text)
    if not cleaned:
        raise ValueError("Empty response from Gemini")
    data = json.loads(cleaned)
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
    return validate_classification(data)


def build_user_content(title: str, page_text: str) -> str:
    """Combine the job title and page text into the user message."""
    return (
        f"Job Title: {title or 'Unknown'}\n\n"
        f"Job description / page content:\n{page_text or '(no content)'}"
    )


def extract_text(response: Any) -> str:
    """Pull the reply text out of a Gemini response object."""
    if hasattr(response, "text"):
        return (response.text or "").strip()
    if hasattr(response, "candidates") and response.candidates:
        return (response.candidates[0].content.parts[0].text or "").strip()
    LOGGER.error("Unexpected response format from Gemini: %s", type(response))
    return ""


class GeminiClassifier:
    """Wrapper around the Google Gemini API for classifying job postings."""

    def __init__(
        self,
        api_key: Optional[str],
        model_name: str,
        request_timeout: float = 30.0,
        max_attempts: int = 3,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> None:
        """
        Initialize the Gemini classifier.

        Args:
            api_key: Google Gemini API key. When absent or malformed the
                classifier stays offline and returns default classifications.
            model_name: Name of the Gemini model to use.
            request_timeout: Per-call timeout in seconds.
            max_attempts: Attempt ceiling for a single classification.
            retry_policy: Override for the default exponential-backoff policy.
        """
        self._model_name = model_name
        self._request_timeout = request_timeout
        self._generation_config = {
            "temperature": 0.2,
            "candidate_count": 1,
            "response_mime_type": "application/json",
        }
        self._retry = retry_policy or RetryPolicy(
            max_attempts=max_attempts,
            backoff=exponential_backoff(1.0),
            is_transient=is_transient_error,
            name="Gemini classification",
        )
        self._model = None

        if not api_key:
            LOGGER.warning("GEMINI_API_KEY not set; classifications will use defaults")
        elif not is_valid_api_key(api_key):
            LOGGER.error(
                "Invalid Gemini API key format. Key should start with '%s'", API_KEY_PREFIX
            )
        else:
            genai.configure(api_key=api_key)
            self._model = genai.GenerativeModel(model_name, system_instruction=SYSTEM_PROMPT)
            LOGGER.info("Gemini classifier initialized with model %s", model_name)

    @property
    def enabled(self) -> bool:
        return self._model is not None

    def _request(self, user_content: str) -> Classification:
        response = self._model.generate_content(
            user_content,
            generation_config=self._generation_config,
            request_options={"timeout": self._request_timeout},
        )
        text = extract_text(response)
        LOGGER.debug("Raw LLM response (first 200 chars): %s", text[:200])
        return parse_reply(text)

    def classify(self, title: str, page_text: str) -> Classification:
        """
        Classify a job posting.

        Args:
            title: Job title from the source table.
            page_text: Visible page text, already truncated by the caller.

        Returns:
            Validated Classification; the default one if the call keeps failing.
        """
        if not self.enabled:
            return Classification.default()

        user_content = build_user_content(title, page_text)
        try:
            return self._retry.call(lambda: self._request(user_content))
        except Exception as exc:
            LOGGER.error(
                "Failed to classify '%s' after %d attempts: %s (%s)",
                title,
                self._retry.max_attempts,
                exc,
                type(exc).__name__,
            )
            return Classification.default()

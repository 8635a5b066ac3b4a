"""Tests for Gemini reply validation, retries and the offline fallback."""

from __future__ import annotations

import json
import socket
from types import SimpleNamespace
from unittest import mock

import pytest
from google.api_core import exceptions as google_exceptions

import llm_handler
from data_models import STACKS, Classification
from llm_handler import (
    GeminiClassifier,
    build_user_content,
    is_transient_error,
    is_valid_api_key,
    parse_reply,
    strip_code_fence,
    validate_classification,
)
from retry import RetryPolicy, exponential_backoff

VALID_KEY = "AIza" + "x" * 35

GOOD_REPLY = {
    "remote": "Remote",
    "bestStack": "Backend",
    "allPossibleStacks": ["Backend"],
    "hasSpecialPhrase": False,
    "matchedSpecialPhrases": [],
    "industry": "N/A",
    "annualSalary": "100K <",
    "level": "Senior",
}


def _response(payload) -> SimpleNamespace:
    text = payload if isinstance(payload, str) else json.dumps(payload)
    return SimpleNamespace(text=text)


@pytest.fixture
def fake_genai(monkeypatch):
    fake = mock.MagicMock()
    monkeypatch.setattr(llm_handler, "genai", fake)
    return fake


def _classifier(sleeps, **kwargs) -> GeminiClassifier:
    policy = RetryPolicy(
        max_attempts=kwargs.pop("max_attempts", 3),
        backoff=exponential_backoff(1.0),
        is_transient=is_transient_error,
        sleep=sleeps.append,
    )
    return GeminiClassifier(VALID_KEY, "gemini-test", retry_policy=policy, **kwargs)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def test_valid_reply_is_kept():
    result = validate_classification(GOOD_REPLY)
    assert result == Classification(
        remote="Remote",
        best_stack="Backend",
        all_possible_stacks=["Backend"],
        has_special_phrase=False,
        matched_special_phrases=[],
        industry="N/A",
        annual_salary="100K <",
        level="Senior",
    )


def test_principle_is_normalized_to_principal():
    assert validate_classification({"level": "Principle"}).level == "Principal"


@pytest.mark.parametrize("level", ["Expert", "", None, 3, "senior"])
def test_unknown_level_becomes_na(level):
    assert validate_classification({"level": level}).level == "N/A"


def test_out_of_vocabulary_values_are_coerced():
    result = validate_classification(
        {
            "remote": "Anywhere",
            "bestStack": "Blockchain Wizard",
            "allPossibleStacks": ["Backend", "Blockchain Wizard", 7, "Backend", "DevOps"],
            "hasSpecialPhrase": "maybe",
            "matchedSpecialPhrases": ["TS/SCI", "", None, "Public Trust"],
            "industry": "retail",
            "annualSalary": "$120,000",
        }
    )
    assert result.remote == "N/A"
    assert result.best_stack == "N/A"
    assert result.all_possible_stacks == ["Backend", "DevOps"]
    assert result.has_special_phrase is False
    assert result.matched_special_phrases == ["TS/SCI", "Public Trust"]
    assert result.industry == "N/A"
    assert result.annual_salary == "N/A"


def test_empty_payload_yields_default():
    assert validate_classification({}) == Classification.default()


def test_empty_industry_becomes_na():
    assert validate_classification({"industry": ""}).industry == "N/A"


def test_special_phrase_flag_accepts_text_booleans():
    assert validate_classification({"hasSpecialPhrase": "true"}).has_special_phrase is True
    assert validate_classification({"hasSpecialPhrase": "Yes"}).has_special_phrase is True
    assert validate_classification({"hasSpecialPhrase": 1}).has_special_phrase is False


def test_every_stack_in_vocabulary_is_accepted():
    for stack in STACKS:
        assert validate_classification({"bestStack": stack}).best_stack == stack


# ---------------------------------------------------------------------------
# Reply parsing
# ---------------------------------------------------------------------------


def test_code_fence_is_stripped():
    assert strip_code_fence('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fence('```\n{"a": 1}```') == '{"a": 1}'
    assert strip_code_fence('{"a": 1}') == '{"a": 1}'


def test_parse_reply_validates_fenced_json():
    reply = "```json\n" + json.dumps({**GOOD_REPLY, "level": "Principle"}) + "\n```"
    assert parse_reply(reply).level == "Principal"


def test_parse_reply_rejects_non_objects():
    with pytest.raises(ValueError):
        parse_reply("[1, 2]")
    with pytest.raises(ValueError):
        parse_reply("")
    with pytest.raises(ValueError):
        parse_reply("not json")


def test_user_content_placeholders():
    content = build_user_content("", "")
    assert content.startswith("Job Title: Unknown")
    assert "(no content)" in content
    assert "Backend Engineer" in build_user_content("Backend Engineer", "text")


# ---------------------------------------------------------------------------
# Credentials and transient errors
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "key, expected",
    [(VALID_KEY, True), ("", False), (None, False), ("sk-" + "x" * 40, False), ("AIza123", False)],
)
def test_api_key_format(key, expected):
    assert is_valid_api_key(key) is expected


@pytest.mark.parametrize(
    "exc",
    [
        ConnectionRefusedError("refused"),
        TimeoutError("slow"),
        socket.gaierror("name resolution"),
        google_exceptions.ServiceUnavailable("down"),
        google_exceptions.DeadlineExceeded("deadline"),
        google_exceptions.TooManyRequests("429"),
        google_exceptions.Unauthenticated("401"),
        RuntimeError("Read timeout on socket"),
        RuntimeError("Connection reset by peer"),
    ],
)
def test_transient_errors(exc):
    assert is_transient_error(exc)


def test_json_errors_are_not_transient():
    assert not is_transient_error(json.JSONDecodeError("bad", "x", 0))


@pytest.mark.parametrize("key", ["", "sk-not-a-gemini-key-at-all"])
def test_missing_or_malformed_key_short_circuits(fake_genai, key):
    classifier = GeminiClassifier(key, "gemini-test")
    assert not classifier.enabled
    assert classifier.classify("Backend Engineer", "text") == Classification.default()
    fake_genai.configure.assert_not_called()
    fake_genai.GenerativeModel.assert_not_called()


# ---------------------------------------------------------------------------
# Classification calls
# ---------------------------------------------------------------------------


def test_classify_success(fake_genai):
    model = fake_genai.GenerativeModel.return_value
    model.generate_content.return_value = _response(GOOD_REPLY)
    sleeps = []

    result = _classifier(sleeps, request_timeout=12).classify("Backend Engineer", "page")

    assert result.best_stack == "Backend"
    assert sleeps == []
    fake_genai.configure.assert_called_once_with(api_key=VALID_KEY)
    _, kwargs = fake_genai.GenerativeModel.call_args
    assert kwargs["system_instruction"] == llm_handler.SYSTEM_PROMPT
    _, call_kwargs = model.generate_content.call_args
    assert call_kwargs["generation_config"]["temperature"] == 0.2
    assert call_kwargs["request_options"] == {"timeout": 12}


def test_out_of_schema_success_is_still_validated(fake_genai):
    model = fake_genai.GenerativeModel.return_value
    model.generate_content.return_value = _response({**GOOD_REPLY, "level": "Expert", "remote": "Mars"})

    result = _classifier([]).classify("Engineer", "page")

    assert result.level == "N/A"
    assert result.remote == "N/A"


def test_transient_errors_back_off_exponentially(fake_genai):
    model = fake_genai.GenerativeModel.return_value
    model.generate_content.side_effect = [
        google_exceptions.ServiceUnavailable("down"),
        ConnectionError("Connection refused"),
        _response(GOOD_REPLY),
    ]
    sleeps = []

    result = _classifier(sleeps).classify("Backend Engineer", "page")

    assert result.level == "Senior"
    assert sleeps == [1.0, 2.0]
    assert model.generate_content.call_count == 3


def test_malformed_json_is_retried_without_delay(fake_genai):
    model = fake_genai.GenerativeModel.return_value
    model.generate_content.side_effect = [_response("{not json"), _response(GOOD_REPLY)]
    sleeps = []

    result = _classifier(sleeps).classify("Backend Engineer", "page")

    assert result.best_stack == "Backend"
    assert sleeps == []


def test_persistent_failure_returns_default(fake_genai):
    model = fake_genai.GenerativeModel.return_value
    model.generate_content.side_effect = TimeoutError("timeout")
    sleeps = []

    result = _classifier(sleeps, max_attempts=3).classify("Backend Engineer", "page")

    assert result == Classification.default()
    assert model.generate_content.call_count == 3
    assert sleeps == [1.0, 2.0]

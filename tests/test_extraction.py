"""
Tests for the extraction client, providers and the offline rules.
"""
from datetime import date, datetime
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from pkg.taskboard.config import Config
from pkg.taskboard.errors import (
    ExtractionFormatError,
    ExtractionServiceError,
    InvalidInputError,
)
from pkg.taskboard.extraction import ExtractionClient, build_prompt
from pkg.taskboard.providers import OpenAIProvider, RuleBasedProvider, build_provider
from pkg.taskboard.rules import extract_by_rules, parse_natural_due_date, split_sentences
from pkg.taskboard.schema import TaskPriority
from pkg.taskboard.validator import validate

from conftest import FakeProvider, tasks_json

JUNE_1 = date(2024, 6, 1)  # a Saturday


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Extraction client
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestExtractionClient:

    def test_prompt_carries_reference_date_and_text(self):
        provider = FakeProvider(tasks_json({"title": "Buy milk"}))
        raw = ExtractionClient(provider).extract("buy milk", JUNE_1)

        assert raw == tasks_json({"title": "Buy milk"})
        [prompt] = provider.prompts
        assert "Reference date: 2024-06-01 (Saturday)" in prompt
        assert "<text>\nbuy milk\n</text>" in prompt

    def test_datetime_reference_is_reduced_to_date(self):
        provider = FakeProvider()
        ExtractionClient(provider).extract("buy milk", datetime(2024, 6, 1, 23, 59))
        assert "Reference date: 2024-06-01" in provider.prompts[0]

    @pytest.mark.parametrize("text", ["", "   \n", None])
    def test_blank_text_is_rejected_without_calling_provider(self, text):
        provider = FakeProvider()
        with pytest.raises(InvalidInputError) as exc:
            ExtractionClient(provider).extract(text)
        assert exc.value.status_code == 400
        assert provider.prompts == []

    def test_provider_failure_is_wrapped(self):
        provider = FakeProvider(TimeoutError("read timed out"))
        with pytest.raises(ExtractionServiceError) as exc:
            ExtractionClient(provider).extract("call mom")
        assert isinstance(exc.value.__cause__, TimeoutError)
        assert "TimeoutError" in exc.value.detail

    def test_empty_response_is_malformed(self):
        with pytest.raises(ExtractionFormatError):
            ExtractionClient(FakeProvider("")).extract("call mom")

    def test_non_json_response_is_malformed(self):
        with pytest.raises(ExtractionFormatError):
            ExtractionClient(FakeProvider("I could not find any tasks.")).extract("call mom")


def test_build_prompt_escapes_nothing_in_user_text():
    prompt = build_prompt('say {"hi"} to {name}', JUNE_1)
    assert 'say {"hi"} to {name}' in prompt


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Offline rules
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_plumber_tomorrow_urgent():
    raw = ExtractionClient(RuleBasedProvider()).extract(
        "Call the plumber tomorrow, it's urgent", JUNE_1
    )
    [candidate] = validate(raw)
    assert candidate.title == "Call the plumber"
    assert candidate.due_date == "2024-06-02"
    assert candidate.priority == TaskPriority.HIGH
    assert candidate.category == "Home"


def test_rules_split_several_tasks_in_order():
    text = "Buy groceries today. Email the client report by Friday!\n- Someday clean the garage"
    result = extract_by_rules(text, JUNE_1)
    titles = [t["title"] for t in result["tasks"]]
    assert titles == ["Buy groceries", "Email the client report", "Clean the garage"]

    groceries, email, garage = result["tasks"]
    assert groceries["dueDate"] == "2024-06-01"
    assert groceries["category"] == "Shopping"
    assert email["dueDate"] == "2024-06-07"
    assert email["category"] == "Work"
    assert garage["priority"] == "low"
    assert "dueDate" not in garage


@pytest.mark.parametrize("text,expected", [
    ("due 2024-07-04", date(2024, 7, 4)),
    ("by June 10th", date(2024, 6, 10)),
    ("on jan 3", date(2025, 1, 3)),
    ("before 6/15", date(2024, 6, 15)),
    ("next monday", date(2024, 6, 3)),
    ("next saturday", date(2024, 6, 8)),
    ("on saturday", date(2024, 6, 1)),
    ("in 3 days", date(2024, 6, 4)),
    ("sometime next week", date(2024, 6, 3)),
    ("tonight", date(2024, 6, 1)),
    ("no date at all", None),
])
def test_parse_natural_due_date(text, expected):
    assert parse_natural_due_date(text, JUNE_1) == expected


def test_split_sentences_ignores_fragments():
    assert split_sentences("Ok. Water the plants.\n\n* Walk dog") == [
        "Water the plants.", "Walk dog"]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Providers
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestOpenAIProvider:

    def test_requires_api_key(self):
        with pytest.raises(ValueError):
            OpenAIProvider(api_key="", model="gpt-4o-mini")

    @patch("pkg.taskboard.providers.OpenAI")
    def test_builds_client_without_retries(self, mock_openai):
        OpenAIProvider(api_key="sk-test", model="m", base_url="http://llm.local/v1", timeout=5)
        kwargs = mock_openai.call_args.kwargs
        assert kwargs["max_retries"] == 0
        assert kwargs["timeout"] == 5
        assert kwargs["base_url"] == "http://llm.local/v1"

    @patch("pkg.taskboard.providers.OpenAI")
    def test_complete_returns_message_content(self, mock_openai):
        message = SimpleNamespace(content='{"tasks": []}')
        mock_openai.return_value.chat.completions.create.return_value = SimpleNamespace(
            choices=[SimpleNamespace(message=message)]
        )
        provider = OpenAIProvider(api_key="sk-test", model="gpt-4o-mini")

        assert provider.complete("prompt") == '{"tasks": []}'
        call = mock_openai.return_value.chat.completions.create.call_args.kwargs
        assert call["model"] == "gpt-4o-mini"
        assert call["messages"] == [{"role": "user", "content": "prompt"}]
        assert call["response_format"] == {"type": "json_object"}

    @patch("pkg.taskboard.providers.OpenAI")
    def test_no_choices_yields_empty_string(self, mock_openai):
        mock_openai.return_value.chat.completions.create.return_value = SimpleNamespace(choices=[])
        assert OpenAIProvider(api_key="sk-test", model="m").complete("prompt") == ""

    @patch("pkg.taskboard.providers.OpenAI")
    def test_sdk_errors_surface_as_service_errors(self, mock_openai):
        mock_openai.return_value.chat.completions.create.side_effect = RuntimeError("boom")
        client = ExtractionClient(OpenAIProvider(api_key="sk-test", model="m"))
        with pytest.raises(ExtractionServiceError):
            client.extract("call mom")


def test_build_provider_selection(monkeypatch):
    monkeypatch.setenv("TASKBOARD_TEST_KEY", "sk-test")
    with patch("pkg.taskboard.providers.OpenAI"):
        cfg = Config(llm_provider="openai", llm_api_key_env="TASKBOARD_TEST_KEY")
        assert isinstance(build_provider(cfg), OpenAIProvider)
    assert isinstance(build_provider(Config(llm_provider="rules")), RuleBasedProvider)
    with pytest.raises(ValueError):
        build_provider(Config(llm_provider="carrier-pigeon"))

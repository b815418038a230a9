import json
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import httpx
import pytest

from extraction.dates import (
    combine_date_time,
    current_date_context,
    guess_date_in_text,
    parse_date,
    parse_relative_date,
    parse_time,
)
from extraction.photo_extractor import NOTHING_DETECTED, PhotoExtractor
from extraction.subtask_generator import MAX_SUGGESTIONS, SubtaskGenerator, suggestions_from_lines
from extraction.task_parser import TaskParser, detect_tags, merge_tags
from llm.llm_client import LLMClient, build_provider, extract_json_array, extract_json_object
from llm.providers.mock_provider import MockProvider
from taskspace.errors import InvalidRequestError, NotConfiguredError, TaskspaceError, UnreachableError

# Wednesday
NOW = datetime(2026, 1, 14, 9, 30, tzinfo=timezone.utc)
TODAY = NOW.date()


# Dates

def test_relative_dates():
    assert parse_relative_date("tomorrow", TODAY) == date(2026, 1, 15)
    assert parse_relative_date("yarın", TODAY) == date(2026, 1, 15)
    assert parse_relative_date("dün", TODAY) == date(2026, 1, 13)
    assert parse_relative_date("next friday", TODAY) == date(2026, 1, 16)
    assert parse_relative_date("haftaya pazartesi", TODAY) == date(2026, 1, 19)
    assert parse_relative_date("in 3 days", TODAY) == date(2026, 1, 17)
    assert parse_relative_date("gelecek hafta", TODAY) == date(2026, 1, 21)
    assert parse_relative_date("someday", TODAY) is None


def test_next_weekday_on_that_weekday_is_a_week_away():
    assert parse_relative_date("next wednesday", TODAY) == date(2026, 1, 21)


def test_parse_date_prefers_iso():
    assert parse_date("2026-02-01T10:00:00Z", TODAY) == date(2026, 2, 1)
    assert parse_date("today", TODAY) == TODAY
    assert parse_date(None) is None


def test_parse_time_normalizes_and_rejects_out_of_range():
    assert parse_time("at 9:05") == "09:05"
    assert parse_time("25:00") is None
    assert parse_time("noon") is None


def test_combine_date_time_defaults_to_end_of_day():
    tz = ZoneInfo("UTC")
    assert combine_date_time(TODAY, "14:30", tz) == datetime(2026, 1, 14, 14, 30, tzinfo=tz)
    end = combine_date_time(TODAY, None, tz)
    assert (end.hour, end.minute, end.second, end.microsecond) == (23, 59, 59, 999000)


def test_date_context_has_english_and_turkish_day():
    ctx = current_date_context(NOW)
    assert ctx["date"] == "2026-01-14"
    assert ctx["day_of_week"] == "Wednesday"
    assert ctx["day_of_week_tr"] == "Çarşamba"


def test_guess_date_in_free_text():
    assert guess_date_in_text("call mom tomorrow", TODAY) == date(2026, 1, 15)
    assert guess_date_in_text("report due next monday", TODAY) == date(2026, 1, 19)
    assert guess_date_in_text("nothing here", TODAY) is None


# Tags

def test_detect_tags_matches_english_and_turkish_keywords():
    assert detect_tags("Study for the exam") == ["school"]
    assert detect_tags("Proje toplantısı") == ["work"]
    assert detect_tags("ev temizliği") == ["home"]


def test_short_keywords_only_match_whole_words():
    assert detect_tags("Evening run") == []
    assert detect_tags("Kişisel plan") == []


def test_merge_tags_lowercases_and_dedupes():
    assert merge_tags(["work"], ["Work", "urgent", "", None]) == ["work", "urgent"]


# LLM client

def test_extract_json_from_chatty_answers():
    assert extract_json_object('Sure!\n```json\n{"title": "X"}\n```') == {"title": "X"}
    assert extract_json_array('Here: ["a", "b"] done') == ["a", "b"]
    assert extract_json_object("no json") is None
    assert extract_json_array('{"not": "a list"}') is None


def test_client_wraps_transport_errors(fake_provider_factory):
    provider = fake_provider_factory(error=httpx.ConnectError("refused"))
    client = LLMClient(provider=provider)
    with pytest.raises(UnreachableError) as exc:
        client.complete(system="s", user="u")
    assert exc.value.status_code == 502


def test_client_passes_images_only_when_given(fake_provider_factory):
    provider = fake_provider_factory("ok")
    client = LLMClient(provider=provider)
    client.complete(system="s", user="u", temperature=0.1)
    assert "images" not in provider.calls[0]
    assert provider.calls[0]["temperature"] == 0.1


def test_unknown_provider_is_not_configured():
    with pytest.raises(NotConfiguredError):
        build_provider("carrier-pigeon")


def test_openai_without_key_is_not_configured(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "")
    with pytest.raises(NotConfiguredError):
        build_provider("openai")


# Task parsing

def test_parse_task_combines_model_output_with_detected_tags(fake_provider_factory):
    provider = fake_provider_factory(json.dumps({
        "title": "Team meeting",
        "description": "Weekly sync",
        "priority": "HIGH",
        "dueDate": "tomorrow",
        "time": "14:00",
        "tags": ["Urgent"],
    }))
    parser = TaskParser(llm_client=LLMClient(provider=provider))
    parsed = parser.parse_task("team meeting tomorrow at 2pm", now=NOW)

    assert parsed.title == "Team meeting"
    assert parsed.priority == "high"
    assert parsed.due_date == "2026-01-15"
    assert parsed.time == "14:00"
    assert parsed.deadline.hour == 14
    assert parsed.tags == ["work", "urgent"]
    assert provider.calls[0]["temperature"] == 0.3
    assert "Wednesday" in provider.calls[0]["user"]


def test_parse_task_without_time_uses_end_of_day(fake_provider_factory):
    provider = fake_provider_factory('{"title": "Pay rent", "dueDate": "2026-01-31"}')
    parsed = TaskParser(llm_client=LLMClient(provider=provider)).parse_task("pay rent", now=NOW)
    assert parsed.deadline.hour == 23
    assert parsed.time is None


def test_parse_task_falls_back_to_raw_input_on_garbage(fake_provider_factory):
    provider = fake_provider_factory("THIS IS NOT JSON AT ALL")
    parsed = TaskParser(llm_client=LLMClient(provider=provider)).parse_task("ödev yarın", now=NOW)
    assert parsed.title == "ödev yarın"
    assert parsed.tags == ["school"]
    assert parsed.due_date == "2026-01-15"


def test_parse_task_falls_back_when_service_unreachable(fake_provider_factory):
    provider = fake_provider_factory(error=httpx.ConnectTimeout("timeout"))
    parsed = TaskParser(llm_client=LLMClient(provider=provider)).parse_task("buy milk", now=NOW)
    assert parsed.title == "buy milk"
    assert parsed.deadline is None


def test_parse_task_requires_input(fake_provider_factory):
    parser = TaskParser(llm_client=LLMClient(provider=fake_provider_factory("{}")))
    with pytest.raises(InvalidRequestError):
        parser.parse_task("   ")


def test_parse_task_with_mock_provider():
    parser = TaskParser(llm_client=LLMClient(provider=MockProvider()))
    parsed = parser.parse_task("water the plants", now=NOW)
    assert parsed.title == "Water the plants"
    assert parsed.priority == "low"


# Subtasks

def test_generate_subtasks_from_json_array(fake_provider_factory):
    provider = fake_provider_factory('["Book venue", " ", "Send invites"]')
    gen = SubtaskGenerator(llm_client=LLMClient(provider=provider))
    assert gen.generate_subtasks("Plan party", user_input="small") == ["Book venue", "Send invites"]
    assert provider.calls[0]["temperature"] == 0.7
    assert "small" in provider.calls[0]["user"]


def test_generate_subtasks_from_bullets_and_caps_count(fake_provider_factory):
    lines = "\n".join(f"{i}. Step {i}" for i in range(1, 10))
    gen = SubtaskGenerator(llm_client=LLMClient(provider=fake_provider_factory("Plan:\n" + lines)))
    out = gen.generate_subtasks("Big project")
    assert len(out) == MAX_SUGGESTIONS
    assert out[0] == "Step 1"


def test_generate_subtasks_unparseable_is_500(fake_provider_factory):
    gen = SubtaskGenerator(llm_client=LLMClient(provider=fake_provider_factory("I cannot help")))
    with pytest.raises(TaskspaceError) as exc:
        gen.generate_subtasks("Anything")
    assert exc.value.status_code == 500


def test_generate_subtasks_requires_title(fake_provider_factory):
    gen = SubtaskGenerator(llm_client=LLMClient(provider=fake_provider_factory("[]")))
    with pytest.raises(InvalidRequestError):
        gen.generate_subtasks("")


def test_suggestions_from_lines_strips_bullets():
    assert suggestions_from_lines("- one\n• two\nnot a bullet\n3. three") == ["one", "two", "three"]


# Photos

def test_analyze_photo_cleans_tasks(fake_provider_factory):
    provider = fake_provider_factory(json.dumps({
        "tasks": [
            {
                "title": " Groceries ",
                "priority": "urgent",
                "suggested_tags": ["home"],
                "subtasks": [{"title": "Milk", "notes": " 2L "}, {"title": " "}],
            },
            {"title": ""},
        ]
    }))
    extractor = PhotoExtractor(llm_client=LLMClient(provider=provider))
    result = extractor.analyze_photo("aGVsbG8=", "image/png", now=NOW)

    assert len(result.tasks) == 1
    task = result.tasks[0]
    assert task.title == "Groceries"
    assert task.priority is None
    assert [(s.title, s.notes) for s in task.subtasks] == [("Milk", "2L")]
    image = provider.calls[0]["images"][0]
    assert image.data_url == "data:image/png;base64,aGVsbG8="
    assert provider.calls[0]["max_tokens"] == 2000


def test_analyze_photo_with_nothing_detected(fake_provider_factory):
    extractor = PhotoExtractor(llm_client=LLMClient(provider=fake_provider_factory('{"tasks": []}')))
    with pytest.raises(TaskspaceError) as exc:
        extractor.analyze_photo("aGVsbG8=")
    assert exc.value.message == NOTHING_DETECTED


def test_analyze_photo_requires_image(fake_provider_factory):
    extractor = PhotoExtractor(llm_client=LLMClient(provider=fake_provider_factory("{}")))
    with pytest.raises(InvalidRequestError):
        extractor.analyze_photo("")

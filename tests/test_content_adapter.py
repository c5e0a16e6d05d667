"""
LLM tier adapter tests using a canned chat client.
"""

import json

import pytest

from conftest import FakeChatClient
from voicenotes.errors import TransientProviderError
from voicenotes.models.schemas import ContentPayload
from voicenotes.services.ai_clients import ChatUsage
from voicenotes.services.providers import LLMTierAdapter, calculate_confidence

TRANSCRIPT = "Remind me to call the dentist on Friday and send the budget to Anna."

SUMMARY_JSON = json.dumps(
    {
        "summary": "Two follow-ups: dentist call and budget email.",
        "keyPoints": ["Call dentist", "Send budget"],
        "actionItems": [{"text": "Call the dentist", "priority": "high", "completed": False}],
        "importantDates": ["Friday"],
    }
)

INSIGHTS_JSON = json.dumps(
    {
        "keyTopics": ["health", "finance"],
        "actionItems": [{"text": "Send budget to Anna", "priority": "medium"}],
        "importantDates": [{"date": "Friday", "context": "dentist"}],
        "sentiment": "neutral",
        "entities": [{"type": "person", "value": "Anna", "confidence": 0.9}],
    }
)


@pytest.mark.asyncio
async def test_responses_are_mapped_into_content_result():
    client = FakeChatClient(f"```json\n{SUMMARY_JSON}\n```", INSIGHTS_JSON)
    adapter = LLMTierAdapter(client, "claude-haiku-4-5")

    result = await adapter.invoke(ContentPayload(transcript=TRANSCRIPT))

    assert result.model == "claude-haiku-4-5"
    assert result.summary.summary == "Two follow-ups: dentist call and budget email."
    assert result.summary.key_points == ["Call dentist", "Send budget"]
    assert result.summary.action_items[0].priority == "high"
    assert result.summary.word_count == 14
    assert result.insights.key_topics == ["health", "finance"]
    assert result.insights.important_dates[0].context == "dentist"
    assert result.insights.entities[0].value == "Anna"
    assert not result.degraded


@pytest.mark.asyncio
async def test_usage_and_cost_cover_both_prompts():
    client = FakeChatClient(SUMMARY_JSON, INSIGHTS_JSON, ChatUsage(input_tokens=100, output_tokens=50))
    adapter = LLMTierAdapter(client, "claude-haiku-4-5")

    result = await adapter.invoke(ContentPayload(transcript=TRANSCRIPT))

    assert result.usage.input_tokens == 200
    assert result.usage.output_tokens == 100
    assert result.cost == pytest.approx(0.0007)


@pytest.mark.asyncio
async def test_local_model_is_free():
    adapter = LLMTierAdapter(FakeChatClient(SUMMARY_JSON, INSIGHTS_JSON), "qwen2.5:14b")

    result = await adapter.invoke(ContentPayload(transcript=TRANSCRIPT))

    assert result.cost == 0.0


@pytest.mark.asyncio
async def test_default_and_overridden_request_parameters():
    client = FakeChatClient(SUMMARY_JSON, INSIGHTS_JSON)
    adapter = LLMTierAdapter(client, "claude-haiku-4-5", max_tokens=800)

    await adapter.invoke(ContentPayload(transcript=TRANSCRIPT))
    temperatures = sorted(r["temperature"] for r in client.requests)
    assert temperatures == [0.2, 0.3]
    assert {r["num_predict"] for r in client.requests} == {800}
    assert all(TRANSCRIPT in r["messages"][1]["content"] for r in client.requests)

    client.requests.clear()
    await adapter.invoke(
        ContentPayload(transcript=TRANSCRIPT), {"temperature": 0.9, "max_tokens": 200}
    )
    assert {r["temperature"] for r in client.requests} == {0.9}
    assert {r["num_predict"] for r in client.requests} == {200}


@pytest.mark.asyncio
async def test_zero_temperature_is_respected():
    client = FakeChatClient(SUMMARY_JSON, INSIGHTS_JSON)
    adapter = LLMTierAdapter(client, "claude-haiku-4-5")

    await adapter.invoke(ContentPayload(transcript=TRANSCRIPT, options={"temperature": 0.0}))

    assert [r["temperature"] for r in client.requests] == [0.0, 0.0]


@pytest.mark.asyncio
async def test_non_json_response_is_transient():
    adapter = LLMTierAdapter(FakeChatClient("I cannot help with that.", INSIGHTS_JSON), "claude-haiku-4-5")

    with pytest.raises(TransientProviderError) as exc_info:
        await adapter.invoke(ContentPayload(transcript=TRANSCRIPT))

    assert exc_info.value.provider == "claude-haiku-4-5"


@pytest.mark.asyncio
async def test_wrong_shape_is_transient():
    bad_insights = json.dumps({"sentiment": "ecstatic"})
    adapter = LLMTierAdapter(FakeChatClient(SUMMARY_JSON, bad_insights), "claude-haiku-4-5")

    with pytest.raises(TransientProviderError):
        await adapter.invoke(ContentPayload(transcript=TRANSCRIPT))


def test_confidence_rewards_complete_summaries():
    long_transcript = "word " * 30

    full = calculate_confidence(
        {"summary": "A summary longer than twenty chars.", "keyPoints": ["a"], "actionItems": [{"text": "b"}]},
        long_transcript,
    )
    empty = calculate_confidence({}, long_transcript)

    assert full == pytest.approx(0.95)
    assert empty == pytest.approx(0.5)


def test_confidence_penalizes_short_transcripts():
    assert calculate_confidence({}, "too short") == pytest.approx(0.4)

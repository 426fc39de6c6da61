import asyncio

import httpx
import pytest

from reben.services.ai_analysis import (
    BurnoutInput,
    GeminiClient,
    WellnessInput,
    analyze_wellness,
    extract_json_object,
    fallback_wellness_analysis,
    predict_burnout_risk,
)


def _reply(text: str):
    async def generate(prompt: str) -> str:
        return text

    return generate


async def _unavailable(prompt: str) -> str:
    raise RuntimeError("GEMINI_API_KEY is not configured")


def test_extract_json_object_ignores_surrounding_prose() -> None:
    assert extract_json_object('Sure! ```json\n{"risk_level": "low"}\n``` Hope it helps.') == {"risk_level": "low"}
    with pytest.raises(ValueError):
        extract_json_object("no json here")


def test_analyze_wellness_parses_model_reply() -> None:
    reply = (
        "Here is the analysis:\n"
        '{"wellness_assessment": "Stable climate", "risk_level": "medium", '
        '"key_insights": ["Participation is up"], "immediate_actions": ["Hold 1:1s"], '
        '"predictions_30_days": "Slight improvement", "confidence_score": 72}'
    )
    analysis = asyncio.run(analyze_wellness(WellnessInput(wellness_score=64), generate=_reply(reply)))

    assert analysis.risk_level == "medium"
    assert analysis.confidence_score == 72
    assert analysis.key_insights == ["Participation is up"]


def test_analyze_wellness_falls_back_when_model_unavailable_or_invalid() -> None:
    data = WellnessInput(wellness_score=80, total_checkins=30, trend="improving", critical_alerts=2)

    unavailable = asyncio.run(analyze_wellness(data, generate=_unavailable))
    malformed = asyncio.run(analyze_wellness(data, generate=_reply('{"risk_level": "extreme"}')))

    assert unavailable == fallback_wellness_analysis(data)
    assert malformed == fallback_wellness_analysis(data)
    assert unavailable.risk_level == "low"
    assert unavailable.confidence_score == 85
    assert "2 critical alerts need follow-up" in unavailable.key_insights


@pytest.mark.parametrize(
    ("score", "checkins", "expected_level", "expected_action"),
    [
        (80, 30, "low", "Review the qualitative feedback received"),
        (60, 10, "medium", "Increase team communication frequency"),
        (40, 10, "high", "Increase team communication frequency"),
    ],
)
def test_fallback_wellness_thresholds(score, checkins, expected_level, expected_action) -> None:
    analysis = fallback_wellness_analysis(WellnessInput(wellness_score=score, total_checkins=checkins))
    assert analysis.risk_level == expected_level
    assert analysis.immediate_actions[1] == expected_action


def test_predict_burnout_risk_fallback_uses_average_mood() -> None:
    low_mood = asyncio.run(predict_burnout_risk(BurnoutInput(avg_mood=1), generate=_unavailable))
    unknown_mood = asyncio.run(predict_burnout_risk(BurnoutInput(), generate=_unavailable))

    assert low_mood.risk_score == pytest.approx(80)
    assert low_mood.risk_level == "high"
    assert low_mood.warning_signs == ["Consistently low mood"]
    assert low_mood.follow_up_timeline == "immediate"
    assert unknown_mood.risk_score == pytest.approx(40)
    assert unknown_mood.risk_level in {"low", "medium"}
    assert unknown_mood.follow_up_timeline == "1 week"


def test_gemini_client_extracts_candidate_text() -> None:
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": '{"ok": true}'}]}}]})

    client = GeminiClient(
        api_key="gemini-test-key",
        model="gemini-1.5-flash",
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    text = asyncio.run(client.generate("hello"))

    assert text == '{"ok": true}'
    assert captured[0].url.params["key"] == "gemini-test-key"
    assert captured[0].url.path.endswith("/models/gemini-1.5-flash:generateContent")


def test_gemini_client_requires_api_key() -> None:
    with pytest.raises(RuntimeError):
        asyncio.run(GeminiClient(api_key="").generate("hello"))

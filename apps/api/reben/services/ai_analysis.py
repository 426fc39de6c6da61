from __future__ import annotations

import json
import re
from collections.abc import Awaitable, Callable
from typing import Any, Literal

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from reben.core.logging import get_logger
from reben.core.settings import get_settings
from reben.services.external_caller import call_with_backoff

logger = get_logger("services.ai_analysis")

RiskLevel = Literal["low", "medium", "high"]
Generate = Callable[[str], Awaitable[str]]

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)

SYSTEM_PROMPT = (
    "You are a senior HR consultant specialised in workplace wellbeing and burnout prevention. "
    "Your analysis must be specific and actionable. Reply ONLY with valid JSON, no extra prose."
)


class WellnessInput(BaseModel):
    wellness_score: float = 0
    risk_employees: int = 0
    total_checkins: int = 0
    trend: str = "neutral"
    critical_alerts: int = 0


class WellnessAnalysis(BaseModel):
    model_config = ConfigDict(extra="ignore")

    wellness_assessment: str
    risk_level: RiskLevel
    key_insights: list[str] = Field(min_length=1)
    immediate_actions: list[str] = Field(min_length=1)
    predictions_30_days: str
    confidence_score: int = Field(ge=0, le=100)


class BurnoutInput(BaseModel):
    checkins_count: int = 0
    avg_mood: float | None = None
    trend: str = "stable"
    previous_alerts: int = 0
    role: str | None = None


class BurnoutPrediction(BaseModel):
    model_config = ConfigDict(extra="ignore")

    risk_score: float = Field(ge=0, le=100)
    risk_level: RiskLevel
    warning_signs: list[str]
    recommended_actions: list[str]
    follow_up_timeline: str


class GeminiClient:
    def __init__(
        self,
        *,
        api_key: str | None = None,
        model: str | None = None,
        client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 30.0,
    ) -> None:
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.GEMINI_API_KEY
        self.model = model or settings.GEMINI_MODEL
        self._client = client
        self._timeout = timeout_seconds

    @property
    def url(self) -> str:
        return f"https://generativelanguage.googleapis.com/v1beta/models/{self.model}:generateContent"

    async def generate(self, prompt: str) -> str:
        if not self.api_key:
            raise RuntimeError("GEMINI_API_KEY is not configured")
        body = {
            "contents": [{"parts": [{"text": f"{SYSTEM_PROMPT}\n\n{prompt}"}]}],
            "generationConfig": {"temperature": 0.7, "topP": 0.8, "maxOutputTokens": 2048},
        }
        if self._client is not None:
            response = await self._client.post(
                self.url, params={"key": self.api_key}, json=body, timeout=self._timeout
            )
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(self.url, params={"key": self.api_key}, json=body)
        response.raise_for_status()
        payload = response.json()
        try:
            return str(payload["candidates"][0]["content"]["parts"][0]["text"])
        except (KeyError, IndexError, TypeError) as exc:
            raise ValueError("Unexpected Gemini response shape") from exc


def extract_json_object(text: str) -> dict[str, Any]:
    match = _JSON_OBJECT.search(text)
    if match is None:
        raise ValueError("No JSON object found in model reply")
    parsed = json.loads(match.group(0))
    if not isinstance(parsed, dict):
        raise ValueError("Model reply JSON is not an object")
    return parsed


def wellness_prompt(data: WellnessInput) -> str:
    return (
        "Analyse this organisation's wellbeing data and give actionable insights.\n"
        f"- Average wellness score: {data.wellness_score}%\n"
        f"- Employees with risk alerts: {data.risk_employees}\n"
        f"- Check-in participation: {data.total_checkins}\n"
        f"- Trend over the last month: {data.trend}\n"
        f"- Active critical alerts: {data.critical_alerts}\n"
        "Reply with exactly this JSON shape:\n"
        '{"wellness_assessment": "...", "risk_level": "low|medium|high", '
        '"key_insights": ["..."], "immediate_actions": ["..."], '
        '"predictions_30_days": "...", "confidence_score": 85}'
    )


def burnout_prompt(data: BurnoutInput) -> str:
    return (
        "Assess this employee's burnout risk from their recent history.\n"
        f"- Check-ins last month: {data.checkins_count}\n"
        f"- Average mood: {data.avg_mood if data.avg_mood is not None else 0}/5\n"
        f"- Recent trend: {data.trend}\n"
        f"- Previous alerts: {data.previous_alerts}\n"
        f"- Role: {data.role or 'unspecified'}\n"
        "Reply with exactly this JSON shape:\n"
        '{"risk_score": 85, "risk_level": "low|medium|high", "warning_signs": ["..."], '
        '"recommended_actions": ["..."], "follow_up_timeline": "immediate|1 week|2 weeks"}'
    )


def fallback_wellness_analysis(data: WellnessInput) -> WellnessAnalysis:
    if data.wellness_score > 75:
        risk_level: RiskLevel = "low"
        climate = "satisfactory"
    elif data.wellness_score > 55:
        risk_level = "medium"
        climate = "with room for improvement"
    else:
        risk_level = "high"
        climate = "that needs immediate attention"

    participation = (
        "High participation detected"
        if data.total_checkins > 20
        else "Low participation, consider incentives"
    )
    trend = (
        "Sustained improvement in metrics"
        if data.trend == "improving"
        else "Metrics stable at current levels"
    )
    alerts = (
        f"{data.critical_alerts} critical alerts need follow-up"
        if data.critical_alerts > 0
        else "No active critical alerts"
    )
    return WellnessAnalysis(
        wellness_assessment=f"A current score of {data.wellness_score:g}% indicates a work climate {climate}.",
        risk_level=risk_level,
        key_insights=[f"Team participation: {participation}", f"Trend: {trend}", alerts],
        immediate_actions=[
            "Run 1:1 sessions with at-risk employees"
            if risk_level == "high"
            else "Keep current wellbeing strategies",
            "Increase team communication frequency"
            if data.total_checkins < 15
            else "Review the qualitative feedback received",
        ],
        predictions_30_days=(
            "Gradual improvement expected with intervention"
            if risk_level == "high"
            else "Stable outlook with continued monitoring"
        ),
        confidence_score=85,
    )


def fallback_burnout_prediction(data: BurnoutInput) -> BurnoutPrediction:
    avg_mood = data.avg_mood if data.avg_mood else 3
    risk_score = max(0.0, 100 - (avg_mood / 5 * 100))
    if risk_score > 70:
        risk_level: RiskLevel = "high"
    elif risk_score > 40:
        risk_level = "medium"
    else:
        risk_level = "low"
    return BurnoutPrediction(
        risk_score=risk_score,
        risk_level=risk_level,
        warning_signs=["Consistently low mood"] if avg_mood < 2.5 else ["Preventive monitoring"],
        recommended_actions=["Regular follow-up", "Manager support"],
        follow_up_timeline="immediate" if risk_score > 70 else "1 week",
    )


async def _ask_model(prompt: str, generate: Generate | None) -> dict[str, Any]:
    settings = get_settings()
    generate = generate or GeminiClient().generate
    reply = await call_with_backoff(
        lambda: generate(prompt),
        max_retries=settings.AI_MAX_RETRIES,
        base_delay_ms=settings.AI_BASE_DELAY_MS,
    )
    return extract_json_object(reply)


async def analyze_wellness(data: WellnessInput, *, generate: Generate | None = None) -> WellnessAnalysis:
    try:
        return WellnessAnalysis.model_validate(await _ask_model(wellness_prompt(data), generate))
    except (httpx.HTTPError, ValueError, ValidationError, RuntimeError) as exc:
        logger.warning(
            "ai_analysis.fallback",
            extra={"component": "ai", "analysis": "wellness", "error_type": type(exc).__name__},
        )
        return fallback_wellness_analysis(data)


async def predict_burnout_risk(data: BurnoutInput, *, generate: Generate | None = None) -> BurnoutPrediction:
    try:
        return BurnoutPrediction.model_validate(await _ask_model(burnout_prompt(data), generate))
    except (httpx.HTTPError, ValueError, ValidationError, RuntimeError) as exc:
        logger.warning(
            "ai_analysis.fallback",
            extra={"component": "ai", "analysis": "burnout", "error_type": type(exc).__name__},
        )
        return fallback_burnout_prediction(data)

"""Gemini-backed plan generator.

Calls the Generative Language ``generateContent`` REST endpoint with httpx
and extracts the JSON object from the model's text reply.  The model is
asked for camelCase JSON matching ``DailyPlan`` / ``WeeklyPlan``; shape
validation happens in ``PlanGeneratorAdapter``.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping, Sequence
from datetime import date, timedelta
from typing import Any

import httpx

from plansync.errors import PlanningUnavailableError
from plansync.models import SchedulingPreferences, WorkItem
from plansync.planning.base import PlanGenerator
from plansync.providers.base import safe_error_message

logger = logging.getLogger(__name__)

GEMINI_API_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

_FENCE_PATTERN = re.compile(r"```(?:json)?\s*\n?", re.IGNORECASE)
_OBJECT_PATTERN = re.compile(r"\{[\s\S]*\}")

_BLOCK_SHAPE = """{
      "startTime": "09:00",
      "endTime": "10:30",
      "taskId": "task-id-if-available",
      "taskTitle": "Task title",
      "type": "deep-work|meeting|admin|break|planning",
      "notes": "Why this time slot"
    }"""

_DAILY_PROMPT = """
Create an optimal daily schedule for these tasks:

Tasks: {tasks}
Date: {plan_date}
Working Hours: {work_start} to {work_end}
Timezone: {timezone}

Consider:
- Energy levels (morning = high focus, afternoon = meetings/admin, evening = wrap-up)
- Task complexity and mental load
- Break times (every 90 minutes)
- Deep work blocks for complex tasks
- Time blocking principles

Use 24-hour HH:MM times inside the working hours. Break blocks have no taskTitle.

Return as valid JSON (no markdown):
{{
  "summary": "Brief overview of the day",
  "timeBlocks": [
    {block}
  ],
  "tips": ["3-5 productivity tips for the day"],
  "estimatedProductivity": 85
}}
"""

_WEEKLY_PROMPT = """
Create an optimal weekly schedule for these tasks:

Tasks: {tasks}
Week Starting: {week_start}
Work Hours: {work_start} to {work_end}
Work Days: {work_days} days per week
Break Duration: {break_minutes} minutes
Deep Work Preference: {deep_work}

Consider:
- Distribute tasks across the week based on priority and deadlines
- Schedule complex tasks during peak productivity times ({deep_work})
- Balance workload across days
- Include breaks and planning time
- Group similar tasks together
- Consider task dependencies and estimated time

Return exactly {span_days} entries in "days", one per consecutive date starting
at {week_start} ({dates}). Days beyond the {work_days} working days get an
empty "timeBlocks" list.

Return as valid JSON (no markdown):
{{
  "summary": "Overview of the week's plan",
  "days": [
    {{
      "date": "{week_start}",
      "dayName": "{first_day_name}",
      "tasksCount": 5,
      "plan": {{
        "summary": "Focus for the day",
        "timeBlocks": [
          {block}
        ],
        "tips": ["Tips for this specific day"],
        "estimatedProductivity": 85
      }}
    }}
  ],
  "totalTasks": 25,
  "totalEstimatedHours": 40,
  "weeklyGoals": ["3-5 main goals for the week"],
  "balanceScore": 85
}}

Return valid JSON only.
"""


def extract_json_object(text: str) -> dict[str, Any]:
    """Pull the outermost JSON object out of a model reply.

    Markdown code fences are stripped first.  Raises ``ValueError`` when no
    JSON object can be decoded.
    """
    cleaned = _FENCE_PATTERN.sub("", text.strip())
    match = _OBJECT_PATTERN.search(cleaned)
    candidate = match.group(0) if match else cleaned
    try:
        payload = json.loads(candidate)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Model reply is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise ValueError("Model reply JSON is not an object")
    return payload


def _tasks_json(work_items: Sequence[WorkItem]) -> str:
    return json.dumps(
        [item.model_dump(mode="json", by_alias=True) for item in work_items],
        ensure_ascii=False,
    )


def _reply_text(payload: Any) -> str:
    candidates = payload.get("candidates") if isinstance(payload, dict) else None
    if not isinstance(candidates, list) or not candidates:
        raise PlanningUnavailableError("Planning model returned no candidates")
    content = candidates[0].get("content") if isinstance(candidates[0], dict) else None
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list):
        raise PlanningUnavailableError("Planning model returned an empty candidate")
    text = "".join(
        part["text"]
        for part in parts
        if isinstance(part, dict) and isinstance(part.get("text"), str)
    )
    if not text.strip():
        raise PlanningUnavailableError("Planning model returned an empty reply")
    return text


class GeminiPlanGenerator(PlanGenerator):
    """``PlanGenerator`` backed by a Gemini model."""

    def __init__(
        self,
        api_key: str | None,
        *,
        model: str = "gemini-2.0-flash",
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 60.0,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._owns_http_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(timeout=timeout_seconds)

    @property
    def name(self) -> str:
        return "gemini"

    @property
    def model(self) -> str:
        return self._model

    async def generate_daily(
        self,
        work_items: Sequence[WorkItem],
        preferences: SchedulingPreferences,
        plan_date: date,
    ) -> Mapping[str, Any]:
        prompt = _DAILY_PROMPT.format(
            tasks=_tasks_json(work_items),
            plan_date=plan_date.isoformat(),
            work_start=preferences.work_start,
            work_end=preferences.work_end,
            timezone=preferences.timezone,
            block=_BLOCK_SHAPE,
        )
        return await self._generate_json(prompt)

    async def generate_weekly(
        self,
        work_items: Sequence[WorkItem],
        preferences: SchedulingPreferences,
        week_start: date,
        span_days: int,
    ) -> Mapping[str, Any]:
        dates = [week_start + timedelta(days=offset) for offset in range(span_days)]
        prompt = _WEEKLY_PROMPT.format(
            tasks=_tasks_json(work_items),
            week_start=week_start.isoformat(),
            work_start=preferences.work_start,
            work_end=preferences.work_end,
            work_days=preferences.work_days_per_week,
            break_minutes=preferences.break_minutes,
            deep_work=preferences.deep_work_preference,
            span_days=span_days,
            dates=", ".join(day.isoformat() for day in dates),
            first_day_name=week_start.strftime("%A"),
            block=_BLOCK_SHAPE,
        )
        return await self._generate_json(prompt)

    async def _generate_json(self, prompt: str) -> dict[str, Any]:
        if not self._api_key:
            raise PlanningUnavailableError("Planning model is not configured (missing API key)")

        url = f"{GEMINI_API_BASE_URL}/models/{self._model}:generateContent"
        body = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {"responseMimeType": "application/json"},
        }
        try:
            response = await self._http_client.post(
                url,
                json=body,
                headers={"x-goog-api-key": self._api_key, "Accept": "application/json"},
            )
        except httpx.HTTPError as exc:
            raise PlanningUnavailableError(f"Planning request failed: {exc}") from exc

        if response.status_code < 200 or response.status_code >= 300:
            raise PlanningUnavailableError(
                f"Planning request failed ({response.status_code}): "
                f"{safe_error_message(response)}"
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise PlanningUnavailableError("Planning endpoint returned invalid JSON") from exc

        text = _reply_text(payload)
        try:
            return extract_json_object(text)
        except ValueError as exc:
            logger.warning("Unparseable plan reply from %s (%d chars)", self._model, len(text))
            raise PlanningUnavailableError(str(exc)) from exc

    async def shutdown(self) -> None:
        if self._owns_http_client:
            await self._http_client.aclose()

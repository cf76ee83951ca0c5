"""Turn a goal description into structured plan content via an AI provider.

The provider returns free text. Parsing is tolerant: code fences are
stripped, truncated JSON gets a bounded repair, and as a last resort the
monthly themes alone are salvaged and turned into simple task patterns.
Anything else becomes a ``PlanGenerationError``.
"""

from __future__ import annotations

import json
import logging
import math
import re

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ai.providers import AIProvider, get_provider
from config import settings
from db.documents import MonthlyTheme, ScheduleKind
from services.errors import PlanGenerationError, UpstreamServiceError


logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "You are an expert curriculum designer. You answer with JSON only."
MAX_PLAN_MONTHS = 12


class GoalInput(BaseModel):
    category: str
    category_name: str | None = None
    primary_goal: str = ""
    experience_level: str = "beginner"  # beginner | intermediate | advanced
    time_commitment: str = "1hr-daily"
    schedule_type: ScheduleKind = "weekdays"
    custom_days_per_week: int | None = Field(default=None, ge=1, le=7)
    start_date: str | None = None
    total_days: int | None = Field(default=None, ge=1, le=730)
    icon: str | None = None
    include_problem_practice: bool = False
    problem_language: str | None = None
    preferences: dict[str, str | list[str]] = Field(default_factory=dict)


class GeneratedResource(BaseModel):
    name: str = "Resource"
    url: str = ""
    type: str = "article"


class GeneratedTask(BaseModel):
    title: str
    description: str = ""
    type: str | None = None
    topic: str | None = None
    resources: list[GeneratedResource] = Field(default_factory=list)


class MonthPattern(BaseModel):
    month: int
    tasks: list[GeneratedTask] = Field(default_factory=list)


class GeneratedPlanContent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str = ""
    description: str = ""
    monthly_themes: list[MonthlyTheme] = Field(default_factory=list, alias="monthlyThemes")
    task_patterns: list[MonthPattern] = Field(default_factory=list, alias="taskPatterns")

    def theme_for(self, month: int) -> MonthlyTheme | None:
        return next((theme for theme in self.monthly_themes if theme.month == month), None)

    def pattern_for(self, month: int) -> list[GeneratedTask]:
        pattern = next((p for p in self.task_patterns if p.month == month), None)
        return list(pattern.tasks) if pattern else []


def plan_month_count(total_days: int) -> int:
    return min(max(math.ceil(total_days / 30), 1), MAX_PLAN_MONTHS)


def build_plan_prompt(goal: GoalInput, total_days: int, daily_minutes: int) -> str:
    months = plan_month_count(total_days)
    schedule_label = "weekdays only" if goal.schedule_type == "weekdays" else "all days"
    if goal.schedule_type == "custom":
        schedule_label = f"{goal.custom_days_per_week or 5} days per week"
    preferences = ", ".join(
        f"{key}: {', '.join(value) if isinstance(value, list) else value}"
        for key, value in goal.preferences.items()
    )
    lines = [
        f"Create a {months}-month learning plan.",
        "",
        f'GOAL: "{goal.primary_goal or goal.category_name or goal.category}"',
        f"CATEGORY: {goal.category_name or goal.category}",
        f"LEVEL: {goal.experience_level}",
        f"DAILY TIME: {daily_minutes} minutes",
        f"DURATION: {total_days} days ({schedule_label})",
    ]
    if preferences:
        lines.append(f"PREFERENCES: {preferences}")
    lines += [
        "",
        "Create monthly themes and 5-6 sample tasks per month; they are expanded to fill every day.",
        "Keep descriptions under 15 words. Task types: learn, practice, build, review.",
        "",
        "Return ONLY valid JSON:",
        '{"title": "Short title", "description": "One sentence",',
        ' "monthlyThemes": [{"month": 1, "theme": "Theme", "focus": "Focus", "topics": ["T1"], "project": "Project"}],',
        ' "taskPatterns": [{"month": 1, "tasks": [{"title": "Task", "description": "Short", "type": "learn", "topic": "T1"}]}]}',
        "",
        f"Generate ALL {months} months.",
    ]
    return "\n".join(lines)


def strip_code_fences(text: str) -> str:
    cleaned = (text or "").strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


def _scan_json(text: str) -> tuple[int, list[str]]:
    """Count unescaped quotes and collect the closers still owed, innermost last."""
    quotes = 0
    in_string = False
    escaped = False
    closers: list[str] = []
    for char in text:
        if escaped:
            escaped = False
            continue
        if char == "\\":
            escaped = True
            continue
        if char == '"':
            quotes += 1
            in_string = not in_string
            continue
        if in_string:
            continue
        if char == "{":
            closers.append("}")
        elif char == "[":
            closers.append("]")
        elif char in "}]" and closers and closers[-1] == char:
            closers.pop()
    return quotes, closers


def repair_truncated_json(text: str) -> str:
    """Best-effort completion of JSON cut off mid-stream."""
    repaired = re.sub(r"\\+$", "", text.rstrip())
    quotes, _ = _scan_json(repaired)
    if quotes % 2:
        repaired += '"'
    repaired = re.sub(r',\s*"[^"]*"\s*$', "", repaired)
    repaired = re.sub(r'\{\s*"[^"]*"\s*$', "{", repaired)
    repaired = re.sub(r":\s*\[\s*$", ": []", repaired)
    repaired = re.sub(r":\s*\{\s*$", ": {}", repaired)
    repaired = re.sub(r":\s*$", ': ""', repaired)
    repaired = re.sub(r",\s*$", "", repaired)
    _, closers = _scan_json(repaired)
    repaired += "".join(reversed(closers))
    return re.sub(r",(\s*[\]}])", r"\1", repaired)


def _task_type_for_index(index: int) -> str:
    return ("learn", "practice", "build")[index % 3]


def extract_partial_plan(text: str, category_name: str) -> GeneratedPlanContent | None:
    """Salvage monthly themes from malformed output and derive task patterns from their topics."""
    match = re.search(r'"monthlyThemes"\s*:\s*(\[[\s\S]*?\])(?=\s*,\s*"taskPatterns")', text)
    if not match:
        return None
    try:
        themes = [MonthlyTheme.model_validate(item) for item in json.loads(match.group(1))]
    except (json.JSONDecodeError, ValidationError, TypeError):
        return None
    if not themes:
        return None

    patterns: list[MonthPattern] = []
    patterns_match = re.search(r'"taskPatterns"\s*:\s*(\[[\s\S]*)', text)
    if patterns_match:
        try:
            raw_patterns = json.loads(repair_truncated_json(patterns_match.group(1)))
            patterns = [MonthPattern.model_validate(item) for item in raw_patterns]
        except (json.JSONDecodeError, ValidationError, TypeError):
            patterns = []
    if not patterns:
        patterns = [
            MonthPattern(
                month=theme.month,
                tasks=[
                    GeneratedTask(
                        title=f"Learn {topic}",
                        description=f"Study and practice {topic} as part of {theme.theme}",
                        type=_task_type_for_index(i),
                        topic=topic,
                    )
                    for i, topic in enumerate(theme.topics[:5])
                ],
            )
            for theme in themes
        ]
    return GeneratedPlanContent(
        title=f"Master {category_name or 'Your Goal'}",
        description=f"A structured learning path starting with {themes[0].theme}",
        monthly_themes=themes,
        task_patterns=patterns,
    )


def _content_from_json(text: str, require_patterns: bool) -> GeneratedPlanContent | None:
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict) or "monthlyThemes" not in data or "taskPatterns" not in data:
        return None
    try:
        content = GeneratedPlanContent.model_validate(data)
    except ValidationError as exc:
        logger.warning(f"Generated plan failed validation: {exc.error_count()} error(s)")
        return None
    if require_patterns and not content.task_patterns:
        return None
    return content


def parse_generated_plan(raw_text: str, category_name: str = "") -> GeneratedPlanContent:
    text = strip_code_fences(raw_text)
    content = _content_from_json(text, require_patterns=True)
    if content is not None:
        return content

    logger.info("Generated plan did not parse, attempting truncated JSON repair")
    content = _content_from_json(repair_truncated_json(text), require_patterns=False)
    if content is not None:
        return content

    content = extract_partial_plan(text, category_name)
    if content is not None:
        logger.info(f"Recovered {len(content.monthly_themes)} monthly theme(s) from partial output")
        return content

    logger.warning(f"Unparseable plan generation output (first 200 chars): {text[:200]!r}")
    raise PlanGenerationError(details="The AI response could not be parsed correctly.")


def default_provider() -> AIProvider:
    return get_provider(
        settings.AI_PROVIDER,
        settings.AI_API_KEY,
        model=settings.AI_MODEL,
        timeout_seconds=settings.AI_TIMEOUT_SECONDS,
    )


async def generate_plan_content(
    goal: GoalInput,
    total_days: int,
    daily_minutes: int,
    provider: AIProvider | None = None,
) -> GeneratedPlanContent:
    provider = provider or default_provider()
    if not (provider.api_key or "").strip():
        raise UpstreamServiceError("AI provider is not configured")
    prompt = build_plan_prompt(goal, total_days, daily_minutes)
    try:
        result = await provider.complete(prompt, system=SYSTEM_PROMPT, max_tokens=settings.AI_MAX_TOKENS)
    except UpstreamServiceError as exc:
        logger.warning(f"Plan generation request failed: {exc}")
        raise PlanGenerationError(details=str(exc)) from exc
    if result.get("stop_reason") in {"max_tokens", "length"}:
        logger.warning("Plan generation output was truncated by the token limit")
    return parse_generated_plan(result.get("content", ""), goal.category_name or goal.category)

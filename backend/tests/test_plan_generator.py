from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path

import httpx
import pytest


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from ai.plan_generator import (  # noqa: E402
    GoalInput,
    build_plan_prompt,
    generate_plan_content,
    parse_generated_plan,
    plan_month_count,
    repair_truncated_json,
    strip_code_fences,
)
from ai.providers import get_provider  # noqa: E402
from services.errors import PlanGenerationError, UpstreamServiceError  # noqa: E402


PLAN_JSON = {
    "title": "Python Foundations",
    "description": "From zero to scripts",
    "monthlyThemes": [
        {"month": 1, "theme": "Basics", "focus": "Syntax", "topics": ["Variables", "Loops"]},
        {"month": 2, "theme": "Functions", "focus": "Reuse", "topics": ["Arguments"]},
    ],
    "taskPatterns": [
        {"month": 1, "tasks": [{"title": "Install Python", "description": "Set up", "type": "learn"}]},
        {"month": 2, "tasks": [{"title": "Write a function", "description": "Practice", "type": "practice"}]},
    ],
}


class FakeProvider:
    def __init__(self, content: str = "", error: Exception | None = None, api_key: str = "key"):
        self.api_key = api_key
        self.content = content
        self.error = error
        self.prompts: list[str] = []

    async def complete(self, prompt: str, system: str = "", max_tokens: int = 4096) -> dict:
        self.prompts.append(prompt)
        if self.error:
            raise self.error
        return {"content": self.content, "stop_reason": "end_turn"}


def test_code_fences_are_stripped():
    assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fences('```\n{"a": 1}```') == '{"a": 1}'
    assert strip_code_fences('  {"a": 1}  ') == '{"a": 1}'


def test_fenced_plan_parses():
    content = parse_generated_plan("```json\n" + json.dumps(PLAN_JSON) + "\n```", "Python")
    assert content.title == "Python Foundations"
    assert [t.month for t in content.monthly_themes] == [1, 2]
    assert content.pattern_for(2)[0].title == "Write a function"
    assert content.theme_for(3) is None


def test_truncated_plan_is_repaired():
    truncated = json.dumps(PLAN_JSON)[:-40]
    repaired = json.loads(repair_truncated_json(truncated))
    assert repaired["monthlyThemes"][0]["theme"] == "Basics"

    content = parse_generated_plan(truncated, "Python")
    assert len(content.monthly_themes) == 2


def test_partial_output_keeps_monthly_themes():
    text = (
        '{"monthlyThemes": [{"month": 1, "theme": "Basics", "topics": ["Loops", "Functions"]}], '
        '"taskPatterns": [{"month": 1, "tasks": [{"title": }'
    )
    content = parse_generated_plan(text, "Python")
    assert content.title == "Master Python"
    assert [t.title for t in content.pattern_for(1)] == ["Learn Loops", "Learn Functions"]


def test_unparseable_output_raises_generation_error():
    with pytest.raises(PlanGenerationError) as excinfo:
        parse_generated_plan("I'm sorry, I can't help with that.", "Python")
    assert str(excinfo.value) == "Failed to generate plan. Please try again."


def test_prompt_mentions_goal_and_month_count():
    goal = GoalInput(category="software", category_name="Software", primary_goal="Learn Rust", schedule_type="custom", custom_days_per_week=3)
    prompt = build_plan_prompt(goal, 156, 60)
    assert plan_month_count(156) == 6
    assert plan_month_count(2000) == 12
    assert '"Learn Rust"' in prompt
    assert "3 days per week" in prompt
    assert "Generate ALL 6 months." in prompt


def test_generate_plan_content_uses_provider():
    provider = FakeProvider(content=json.dumps(PLAN_JSON))
    goal = GoalInput(category="software", primary_goal="Learn Python")
    content = asyncio.run(generate_plan_content(goal, 60, 60, provider=provider))
    assert content.title == "Python Foundations"
    assert len(provider.prompts) == 1


def test_generate_plan_content_wraps_provider_failures():
    goal = GoalInput(category="software")
    with pytest.raises(PlanGenerationError):
        asyncio.run(generate_plan_content(goal, 60, 60, provider=FakeProvider(error=UpstreamServiceError("boom"))))
    with pytest.raises(UpstreamServiceError):
        asyncio.run(generate_plan_content(goal, 60, 60, provider=FakeProvider(api_key="")))


def test_anthropic_provider_over_mock_transport():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "content": [{"type": "text", "text": '{"ok": true}'}],
                "usage": {"input_tokens": 12, "output_tokens": 5},
                "model": "claude-test",
                "stop_reason": "end_turn",
            },
        )

    provider = get_provider("anthropic", "sk-test", transport=httpx.MockTransport(handler))
    result = asyncio.run(provider.complete("hello", system="json only", max_tokens=100))
    assert result["content"] == '{"ok": true}'
    assert result["tokens_in"] == 12
    assert seen[0].headers["x-api-key"] == "sk-test"
    assert json.loads(seen[0].content)["system"] == "json only"


def test_provider_http_error_becomes_upstream_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(529, text="overloaded")

    provider = get_provider("openai", "sk-test", model="gpt-4o", transport=httpx.MockTransport(handler))
    with pytest.raises(UpstreamServiceError):
        asyncio.run(provider.complete("hello"))
    with pytest.raises(ValueError):
        get_provider("mystery", "key")

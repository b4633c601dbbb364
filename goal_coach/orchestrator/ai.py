import json
import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from ..agent.utils.dates import resolve_now, to_iso
from ..config import Settings, get_settings
from ..schemas.coach import CoachMessage, CoachSummary
from ..schemas.goal import Goal
from ..schemas.validator import validate_rewritten_summary
from .prompts import load_prompts

logger = logging.getLogger(__name__)


def _strip_code_fences(value: str) -> str:
    return value.replace("```json", "").replace("```", "").strip()


def _headers(settings: Settings, title: str) -> Dict[str, str]:
    return {
        "Authorization": f"Bearer {settings.openrouter_api_key}",
        "Content-Type": "application/json",
        "HTTP-Referer": settings.client_origin,
        "X-Title": title,
    }


def _extract_content(payload: Any) -> Optional[str]:
    if not isinstance(payload, dict):
        return None
    choices = payload.get("choices") or []
    if not choices or not isinstance(choices[0], dict):
        return None
    content = (choices[0].get("message") or {}).get("content")
    if not isinstance(content, str) or not content.strip():
        return None
    return content.strip()


async def _post_chat_completion(
    body: Dict[str, Any],
    settings: Settings,
    client: Optional[httpx.AsyncClient] = None,
) -> Optional[str]:
    prompts = load_prompts()
    headers = _headers(settings, prompts.get("app_title", "Progress Tracker"))
    if client is not None:
        response = await client.post(settings.openrouter_url, headers=headers, json=body, timeout=settings.ai_timeout_seconds)
    else:
        async with httpx.AsyncClient(timeout=settings.ai_timeout_seconds) as owned:
            response = await owned.post(settings.openrouter_url, headers=headers, json=body)
    response.raise_for_status()
    return _extract_content(response.json())


def build_rewrite_prompt(summary: CoachSummary) -> str:
    prompts = load_prompts()["rewrite"]
    payload = summary.model_dump(include={"topPriorities", "risks", "nextActions", "confidence"})
    return "\n".join([*prompts["instructions"], json.dumps(payload)])


async def rewrite_summary_with_ai(
    base: CoachSummary,
    settings: Optional[Settings] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> Optional[CoachSummary]:
    """Ask the model to polish the prose of ``base``.

    Returns ``None`` when no key is configured or anything goes wrong; callers keep
    the rules summary in that case.
    """
    settings = settings or get_settings()
    if not settings.openrouter_api_key:
        return None

    prompts = load_prompts()["rewrite"]
    body = {
        "model": settings.openrouter_model,
        "temperature": prompts.get("temperature", 0.1),
        "response_format": {"type": "json_object"},
        "messages": [
            {"role": "system", "content": prompts["system"]},
            {"role": "user", "content": build_rewrite_prompt(base)},
        ],
    }

    try:
        content = await _post_chat_completion(body, settings, client)
        if not content:
            logger.warning("Summary rewrite returned no content, keeping rules summary")
            return None
        validated = validate_rewritten_summary(json.loads(_strip_code_fences(content)), base)
    except Exception as error:  # pylint: disable=broad-except
        logger.warning("Summary rewrite rejected, keeping rules summary: %s", error)
        return None

    meta = base.meta.model_copy(update={"source": "ai", "generatedAt": to_iso(resolve_now(None))})
    return validated.model_copy(update={"meta": meta})


def _compact_goal(goal: Goal) -> Dict[str, Any]:
    latest = goal.progress_events[0] if goal.progress_events else None
    next_milestone = next((milestone.title for milestone in goal.milestones if not milestone.completed), None)
    return {
        "id": goal.id,
        "title": goal.title,
        "status": goal.status,
        "currentProgress": goal.current_progress,
        "targetDate": goal.target_date,
        "latestProgress": (
            {"value": latest.value, "createdAt": to_iso(latest.created_at), "note": latest.note} if latest else None
        ),
        "nextMilestone": next_milestone,
        "tags": list(goal.tags),
    }


def build_chat_prompt(
    goals: Sequence[Goal],
    latest_summary: Optional[CoachSummary],
    history: Sequence[CoachMessage],
    user_message: str,
) -> str:
    prompts = load_prompts()["chat"]
    max_goals = int(prompts.get("max_goals", 12))
    max_history = int(prompts.get("max_history", 12))
    compact_history: List[Dict[str, str]] = [
        {"role": message.role, "content": message.content} for message in list(history)[-max_history:]
    ]
    return "\n".join(
        [
            *prompts["instructions"],
            "Context goals:",
            json.dumps([_compact_goal(goal) for goal in list(goals)[:max_goals]]),
            "Latest coach summary (if any):",
            json.dumps(latest_summary.model_dump() if latest_summary else None),
            "Recent conversation history:",
            json.dumps(compact_history),
            "User message:",
            user_message,
        ]
    )


async def generate_coach_chat_reply(
    goals: Sequence[Goal],
    latest_summary: Optional[CoachSummary],
    history: Sequence[CoachMessage],
    user_message: str,
    settings: Optional[Settings] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> Optional[str]:
    settings = settings or get_settings()
    if not settings.openrouter_api_key:
        return None

    prompts = load_prompts()["chat"]
    body = {
        "model": settings.openrouter_model,
        "temperature": prompts.get("temperature", 0.3),
        "messages": [
            {"role": "system", "content": prompts["system"]},
            {"role": "user", "content": build_chat_prompt(goals, latest_summary, history, user_message)},
        ],
    }

    try:
        return await _post_chat_completion(body, settings, client)
    except Exception as error:  # pylint: disable=broad-except
        logger.warning("Coach chat reply failed, using rules fallback: %s", error)
        return None

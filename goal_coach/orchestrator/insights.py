"""Per-user coach insight cache and action completion tracking."""

import logging
from datetime import datetime, timedelta
from typing import Optional

import httpx

from ..agent.utils.dates import resolve_now
from ..agent.utils.nanoid import nanoid
from ..config import get_settings
from ..errors import not_found
from ..schemas.coach import CoachActionCompletionRate, CoachInsight, CoachSummary
from .ai import rewrite_summary_with_ai
from .goals import goals_for_user, require_goal
from .rules import build_rules_summary, round_half_up
from .store import CoachStore, CompletionRow, InsightRow, coach_store

logger = logging.getLogger(__name__)

MIN_WINDOW_DAYS = 1
MAX_WINDOW_DAYS = 30


def map_insight(row: InsightRow) -> CoachInsight:
    return CoachInsight(
        id=row.id,
        source=row.source,  # type: ignore[arg-type]
        summary=row.summary,
        createdAt=row.created_at,
        expiresAt=row.expires_at,
    )


def valid_insight(store: CoachStore, user_id: str, now: datetime) -> Optional[InsightRow]:
    row = store.insights.get(user_id)
    if row is None or row.expires_at <= now:
        return None
    return row


def upsert_insight(store: CoachStore, user_id: str, summary: CoachSummary, now: datetime) -> InsightRow:
    previous = store.insights.get(user_id)
    row = InsightRow(
        id=previous.id if previous else nanoid(),
        user_id=user_id,
        source=summary.meta.source,
        summary=summary,
        created_at=now,
        expires_at=now + timedelta(hours=get_settings().cache_ttl_hours),
    )
    store.insights[user_id] = row
    return row


async def get_latest_insight(user_id: str, now: Optional[datetime] = None) -> Optional[CoachInsight]:
    current = resolve_now(now)
    async with coach_store.transaction() as store:
        row = valid_insight(store, user_id, current)
    return map_insight(row) if row else None


async def generate_insight(
    user_id: str,
    now: Optional[datetime] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> CoachInsight:
    current = resolve_now(now)
    async with coach_store.transaction() as store:
        goals = goals_for_user(store, user_id)

    base = build_rules_summary(goals, current)
    # model call runs outside the lock
    summary = await rewrite_summary_with_ai(base, client=client) or base

    async with coach_store.transaction() as store:
        latest = goals_for_user(store, user_id)
        if latest != goals:
            # goals changed while the model was running; the rewrite describes stale state
            logger.info("Goals changed during insight generation for user %s, using rules summary", user_id)
            summary = build_rules_summary(latest, current)
        row = upsert_insight(store, user_id, summary, current)
    logger.info("Generated %s insight %s for user %s", row.source, row.id, user_id)
    return map_insight(row)


async def get_or_generate_summary(user_id: str, now: Optional[datetime] = None) -> CoachSummary:
    cached = await get_latest_insight(user_id, now)
    if cached is not None:
        return cached.summary
    return (await generate_insight(user_id, now)).summary


async def complete_action(user_id: str, goal_id: str, insight_id: str, now: Optional[datetime] = None) -> None:
    current = resolve_now(now)
    async with coach_store.transaction() as store:
        insight = store.insights.get(user_id)
        if insight is None or insight.id != insight_id:
            raise not_found("Coach insight not found")
        require_goal(store, user_id, goal_id)
        store.completions.append(
            CompletionRow(id=nanoid(), user_id=user_id, goal_id=goal_id, insight_id=insight_id, completed_at=current)
        )
    logger.info("Recorded completed action for goal %s from insight %s", goal_id, insight_id)


async def get_completion_rate(
    user_id: str, window_days: int = 7, now: Optional[datetime] = None
) -> CoachActionCompletionRate:
    current = resolve_now(now)
    days = min(max(window_days, MIN_WINDOW_DAYS), MAX_WINDOW_DAYS)
    since = current - timedelta(days=days)
    async with coach_store.transaction() as store:
        suggested = sum(
            len(row.summary.nextActions)
            for row in store.insights.values()
            if row.user_id == user_id and row.created_at >= since
        )
        completed = sum(1 for row in store.completions if row.user_id == user_id and row.completed_at >= since)
    rate = round_half_up(completed / suggested * 100) if suggested else 0
    return CoachActionCompletionRate(
        windowDays=days, suggestedActions=suggested, completedActions=completed, rate=rate
    )

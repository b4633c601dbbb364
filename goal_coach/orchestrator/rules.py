import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from ..schemas.coach import (
    CoachActionItem,
    CoachConfidence,
    CoachPriorityItem,
    CoachRiskItem,
    CoachSummary,
    CoachSummaryMeta,
)
from ..schemas.goal import Goal

SECONDS_IN_DAY = 60 * 60 * 24
DATA_WINDOW_DAYS = 14
ENGINE_VERSION = "rules-v1.1"
EMPTY_GOAL_ID = "00000000-0000-0000-0000-000000000000"
MAX_PRIORITIES = 3
MAX_RISKS = 4
NEXT_ACTION_COUNT = 3


@dataclass
class ScoredGoal:
    goal: Goal
    due_days: Optional[int]
    stale_days: int
    velocity: int
    milestone_ratio: float
    urgency_score: float
    momentum_score: float
    feasibility_score: float
    effort_score: float
    priority_score: int
    archetype: str


def _clamp(value: float, min_value: float, max_value: float) -> float:
    return min(max_value, max(min_value, value))


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _to_iso(value: datetime) -> str:
    return _as_utc(value).isoformat().replace("+00:00", "Z")


def round_half_up(value: float) -> int:
    # Math.round semantics: halves go toward +infinity.
    return int(math.floor(value + 0.5))


def to_band(value: float) -> str:
    if value >= 70:
        return "high"
    if value >= 40:
        return "medium"
    return "low"


def parse_target_date(raw: Optional[str]) -> Optional[datetime]:
    if not raw or not isinstance(raw, str):
        return None
    candidate = raw.strip()
    try:
        parsed = datetime.fromisoformat(candidate.replace("Z", "+00:00"))
    except ValueError:
        return None
    return _as_utc(parsed)


def get_day_diff(target_date: Optional[str], now: datetime) -> Optional[int]:
    target = parse_target_date(target_date)
    if target is None:
        return None
    return math.ceil((target - now).total_seconds() / SECONDS_IN_DAY)


def get_effective_status(goal: Goal) -> str:
    if goal.status == "ARCHIVED":
        return "ARCHIVED"
    return "COMPLETED" if goal.current_progress >= 100 else "ACTIVE"


def get_stale_days(goal: Goal, now: datetime) -> int:
    latest = goal.progress_events[0].created_at if goal.progress_events else goal.updated_at
    elapsed = (now - _as_utc(latest)).total_seconds() / SECONDS_IN_DAY
    return max(0, math.floor(elapsed))


def get_recent_velocity(goal: Goal, now: datetime) -> int:
    window_start = now - timedelta(days=DATA_WINDOW_DAYS)
    recent = [event for event in goal.progress_events if _as_utc(event.created_at) >= window_start]
    if len(recent) < 2:
        return 0
    return int(_clamp(recent[0].value - recent[-1].value, -100, 100))


def get_archetype(goal: Goal, due_days: Optional[int], stale_days: int, velocity: int) -> str:
    if (due_days is not None and due_days < 0) or stale_days >= 7:
        return "rescue"
    if goal.current_progress >= 80 or (goal.current_progress >= 65 and velocity >= 8):
        return "close"
    return "push"


def get_risk_severity(score: float) -> str:
    if score >= 75:
        return "high"
    if score >= 45:
        return "medium"
    return "low"


def get_priority_reason(archetype: str, due_days: Optional[int], stale_days: int, velocity: int) -> str:
    if archetype == "rescue":
        if due_days is not None and due_days < 0:
            return "Overdue goal: recover immediately with a focused execution block."
        if stale_days >= 7:
            return "Momentum dropped for 7+ days; immediate reactivation needed."
        return "High-risk execution path requires rapid stabilization."
    if archetype == "close":
        return "Close-to-finish goal with strong payoff if completed this week."
    if due_days is not None and due_days <= 7:
        return "Due within a week; prioritized for predictable completion."
    if velocity <= 0:
        return "Progress velocity is flat; needs a concrete push to move."
    return "High-leverage active goal with room to accelerate outcomes."


def get_action_for_archetype(scored: ScoredGoal) -> CoachActionItem:
    goal = scored.goal
    next_milestone = next((milestone for milestone in goal.milestones if not milestone.completed), None)
    if scored.archetype == "rescue":
        overdue = scored.due_days is not None and scored.due_days < 0
        return CoachActionItem(
            goalId=goal.id,
            action=(
                "Run one 45-minute recovery sprint and log a concrete progress update today."
                if overdue
                else "Run one 45-minute restart sprint and unblock the next critical step today."
            ),
            why=(
                "Breaking long inactivity is the fastest way to restore momentum."
                if scored.stale_days >= 7
                else "Time-sensitive goals need immediate output to avoid further slip."
            ),
        )
    if scored.archetype == "close":
        return CoachActionItem(
            goalId=goal.id,
            action=(
                f"Block a 40-minute finish sprint to complete milestone: {next_milestone.title}."
                if next_milestone
                else "Block a 40-minute finish sprint and move progress to 100% this week."
            ),
            why="Completing near-finish goals frees capacity and compounds motivation.",
        )
    return CoachActionItem(
        goalId=goal.id,
        action=(
            f"Schedule a 45-minute deep-work block to complete: {next_milestone.title}."
            if next_milestone
            else "Schedule a 45-minute deep-work block and ship one measurable milestone step."
        ),
        why="Time-boxed focused execution is the highest-leverage move for this goal.",
    )


def score_goal(goal: Goal, now: datetime) -> ScoredGoal:
    due_days = get_day_diff(goal.target_date, now)
    stale_days = get_stale_days(goal, now)
    velocity = get_recent_velocity(goal, now)
    total_milestones = len(goal.milestones)
    done_milestones = len([milestone for milestone in goal.milestones if milestone.completed])
    milestone_ratio = done_milestones / total_milestones if total_milestones else 0.0

    if due_days is not None and due_days < 0:
        base_urgency = 100
    elif due_days is not None and due_days <= 7:
        base_urgency = 70
    elif due_days is None:
        base_urgency = 35
    else:
        base_urgency = 20
    urgency = base_urgency + min(stale_days * 2, 20)
    momentum = _clamp(55 + velocity * 2 - stale_days * 3, 0, 100)
    feasibility = _clamp(40 + milestone_ratio * 45 + goal.current_progress * 0.15, 0, 100)

    progress = goal.current_progress
    if progress >= 80 and stale_days >= 3:
        effort = 90
    elif progress >= 65:
        effort = 70
    elif progress <= 25 and stale_days >= 7:
        effort = 75
    else:
        effort = 50

    priority = round_half_up(
        _clamp(urgency * 0.4 + (100 - momentum) * 0.25 + (100 - feasibility) * 0.2 + effort * 0.15, 0, 100)
    )

    return ScoredGoal(
        goal=goal,
        due_days=due_days,
        stale_days=stale_days,
        velocity=velocity,
        milestone_ratio=milestone_ratio,
        urgency_score=urgency,
        momentum_score=momentum,
        feasibility_score=feasibility,
        effort_score=effort,
        priority_score=priority,
        archetype=get_archetype(goal, due_days, stale_days, velocity),
    )


def _risk_for(item: ScoredGoal) -> Optional[CoachRiskItem]:
    goal = item.goal
    if item.due_days is not None and item.due_days <= 7:
        return CoachRiskItem(
            goalId=goal.id,
            title=goal.title,
            category="schedule",
            severity=get_risk_severity(item.urgency_score),
            reason=(
                "Deadline has passed; schedule recovery needed now."
                if item.due_days < 0
                else "Deadline is within 7 days with limited execution buffer."
            ),
        )
    if item.stale_days >= 7:
        return CoachRiskItem(
            goalId=goal.id,
            title=goal.title,
            category="consistency",
            severity=get_risk_severity(65 + item.stale_days),
            reason="No meaningful update in over a week, signaling momentum decay.",
        )
    if item.momentum_score < 35 or goal.current_progress < 25:
        return CoachRiskItem(
            goalId=goal.id,
            title=goal.title,
            category="execution",
            severity=get_risk_severity(55 + (35 - item.momentum_score)),
            reason="Execution pace is below required velocity for confident completion.",
        )
    return None


def _empty_summary(meta: CoachSummaryMeta) -> CoachSummary:
    return CoachSummary(
        topPriorities=[],
        risks=[],
        nextActions=[
            CoachActionItem(
                goalId=EMPTY_GOAL_ID,
                action="Schedule a 30-minute planning session and create one goal with a clear target date.",
                why="Coach recommendations become more precise once active goals exist.",
            ),
            CoachActionItem(
                goalId=EMPTY_GOAL_ID,
                action="Define two milestones for that goal in a 20-minute setup block.",
                why="Milestones make weekly actions concrete and trackable.",
            ),
            CoachActionItem(
                goalId=EMPTY_GOAL_ID,
                action="Run one 25-minute execution block and log your first progress update.",
                why="A first progress log establishes momentum and baseline confidence.",
            ),
        ],
        confidence=CoachConfidence(value=40, band="medium"),
        meta=meta,
    )


def _confidence(scored: List[ScoredGoal]) -> CoachConfidence:
    count = max(len(scored), 1)
    overdue_count = len([item for item in scored if item.due_days is not None and item.due_days < 0])
    stale_count = len([item for item in scored if item.stale_days >= 7])
    average_stale = sum(item.stale_days for item in scored) / count
    cadence = _clamp(100 - round_half_up(average_stale * 7), 0, 100)
    deadline = _clamp(100 - round_half_up((overdue_count / count) * 100), 0, 100)
    completion = _clamp(round_half_up(sum(item.feasibility_score for item in scored) / count), 0, 100)
    value = round_half_up(_clamp(cadence * 0.35 + deadline * 0.4 + completion * 0.25 - stale_count * 2, 0, 100))
    return CoachConfidence(value=value, band=to_band(value))


def build_rules_summary(goals: List[Goal], now: Optional[datetime] = None) -> CoachSummary:
    """Rank active goals and derive priorities, risks, next actions and a confidence score.

    Deterministic for a given ``now``; goals that are archived or at 100% progress are ignored.
    """
    current = _as_utc(now) if now else datetime.now(timezone.utc)
    meta = CoachSummaryMeta(
        generatedAt=_to_iso(current),
        source="rules",
        engineVersion=ENGINE_VERSION,
        dataWindowDays=DATA_WINDOW_DAYS,
    )

    active_goals = [goal for goal in goals if get_effective_status(goal) == "ACTIVE"]
    if not active_goals:
        return _empty_summary(meta)

    scored = [score_goal(goal, current) for goal in active_goals]
    ranked = sorted(scored, key=lambda item: item.priority_score, reverse=True)

    top_priorities = [
        CoachPriorityItem(
            goalId=item.goal.id,
            title=item.goal.title,
            reason=get_priority_reason(item.archetype, item.due_days, item.stale_days, item.velocity),
            score=item.priority_score,
        )
        for item in ranked[:MAX_PRIORITIES]
    ]

    risks: List[CoachRiskItem] = []
    for item in ranked:
        risk = _risk_for(item)
        if risk is None:
            continue
        risks.append(risk)
        if len(risks) == MAX_RISKS:
            break

    seen_goals = set()
    next_actions: List[CoachActionItem] = []
    for item in ranked:
        if item.goal.id in seen_goals:
            continue
        next_actions.append(get_action_for_archetype(item))
        seen_goals.add(item.goal.id)
        if len(next_actions) == NEXT_ACTION_COUNT:
            break
    while len(next_actions) < NEXT_ACTION_COUNT:
        next_actions.append(
            CoachActionItem(
                goalId=ranked[0].goal.id,
                action="Run one 30-minute focused block and log a measurable update.",
                why="Small, time-boxed execution blocks keep weekly momentum reliable.",
            )
        )

    return CoachSummary(
        topPriorities=top_priorities,
        risks=risks,
        nextActions=next_actions,
        confidence=_confidence(scored),
        meta=meta,
    )


def build_fallback_reply(summary: CoachSummary) -> str:
    if not summary.nextActions:
        return "Start with one 30-minute planning block and define your next concrete milestone."
    steps = " ".join(f"{index + 1}) {action.action}" for index, action in enumerate(summary.nextActions[:3]))
    return f"Focus this week on: {steps}"

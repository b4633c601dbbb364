from datetime import datetime
from typing import List, Optional

from ..agent.utils.dates import resolve_now
from ..agent.utils.nanoid import nanoid
from ..errors import not_found
from ..schemas.goal import Goal, GoalCandidate, GoalCreateInput, Milestone, ProgressEvent, ProgressInput
from .store import CoachStore, coach_store


def insert_goal(
    store: CoachStore,
    user_id: str,
    title: str,
    details: Optional[str] = None,
    target_date: Optional[str] = None,
    now: Optional[datetime] = None,
    **extra,
) -> Goal:
    current = resolve_now(now)
    goal = Goal(
        id=nanoid(),
        user_id=user_id,
        title=title,
        details=details,
        target_date=target_date,
        created_at=current,
        updated_at=current,
        **extra,
    )
    store.goals[goal.id] = goal
    return goal


def find_goal(store: CoachStore, user_id: str, goal_id: str) -> Optional[Goal]:
    goal = store.goals.get(goal_id)
    if goal is None or goal.user_id != user_id:
        return None
    return goal


def require_goal(store: CoachStore, user_id: str, goal_id: str) -> Goal:
    goal = find_goal(store, user_id, goal_id)
    if goal is None:
        raise not_found("Goal not found")
    return goal


def goals_for_user(store: CoachStore, user_id: str) -> List[Goal]:
    return [goal for goal in store.goals.values() if goal.user_id == user_id]


def to_candidates(goals: List[Goal]) -> List[GoalCandidate]:
    return [GoalCandidate(id=goal.id, title=goal.title, status=goal.status) for goal in goals]


async def create_goal(user_id: str, params: GoalCreateInput, now: Optional[datetime] = None) -> Goal:
    async with coach_store.transaction() as store:
        return insert_goal(
            store,
            user_id,
            params.title.strip(),
            details=params.details,
            target_date=params.target_date,
            now=now,
            status=params.status,
            current_progress=params.current_progress,
            tags=list(dict.fromkeys(tag.strip() for tag in params.tags if tag.strip())),
        )


async def get_goal_by_id(user_id: str, goal_id: str) -> Goal:
    async with coach_store.transaction() as store:
        return require_goal(store, user_id, goal_id)


async def list_goals(user_id: str, status: Optional[str] = None) -> List[Goal]:
    async with coach_store.transaction() as store:
        goals = goals_for_user(store, user_id)
    if status:
        goals = [goal for goal in goals if goal.status == status]
    return sorted(goals, key=lambda goal: goal.created_at)


async def log_progress(user_id: str, goal_id: str, params: ProgressInput, now: Optional[datetime] = None) -> Goal:
    current = resolve_now(now)
    async with coach_store.transaction() as store:
        goal = require_goal(store, user_id, goal_id)
        event = ProgressEvent(id=nanoid(), goal_id=goal.id, value=params.value, note=params.note, created_at=current)
        updated = goal.model_copy(
            update={
                "progress_events": [event, *goal.progress_events],
                "current_progress": params.value,
                "updated_at": current,
            }
        )
        store.goals[goal.id] = updated
        return updated


async def add_milestone(user_id: str, goal_id: str, title: str, now: Optional[datetime] = None) -> Goal:
    current = resolve_now(now)
    async with coach_store.transaction() as store:
        goal = require_goal(store, user_id, goal_id)
        milestone = Milestone(id=nanoid(), goal_id=goal.id, title=title.strip(), created_at=current)
        updated = goal.model_copy(update={"milestones": [*goal.milestones, milestone], "updated_at": current})
        store.goals[goal.id] = updated
        return updated


async def complete_milestone(user_id: str, goal_id: str, milestone_id: str, now: Optional[datetime] = None) -> Goal:
    current = resolve_now(now)
    async with coach_store.transaction() as store:
        goal = require_goal(store, user_id, goal_id)
        if not any(milestone.id == milestone_id for milestone in goal.milestones):
            raise not_found("Milestone not found")
        milestones = [
            milestone.model_copy(update={"completed": True, "completed_at": current})
            if milestone.id == milestone_id
            else milestone
            for milestone in goal.milestones
        ]
        updated = goal.model_copy(update={"milestones": milestones, "updated_at": current})
        store.goals[goal.id] = updated
        return updated


async def add_tag(user_id: str, goal_id: str, name: str, now: Optional[datetime] = None) -> Goal:
    current = resolve_now(now)
    cleaned = name.strip()
    async with coach_store.transaction() as store:
        goal = require_goal(store, user_id, goal_id)
        if cleaned.lower() in (tag.lower() for tag in goal.tags):
            return goal
        updated = goal.model_copy(update={"tags": [*goal.tags, cleaned], "updated_at": current})
        store.goals[goal.id] = updated
        return updated

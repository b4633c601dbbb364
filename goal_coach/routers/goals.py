from typing import List, Optional

from fastapi import APIRouter, Depends

from ..orchestrator import goals as goal_service
from ..schemas.goal import Goal, GoalCreateInput, GoalStatus, MilestoneInput, ProgressInput, TagInput
from .deps import current_user_id

router = APIRouter(prefix="/goals", tags=["goals"])


@router.post("", status_code=201)
async def create_goal(body: GoalCreateInput, user_id: str = Depends(current_user_id)) -> Goal:
    return await goal_service.create_goal(user_id, body)


@router.get("")
async def list_goals(status: Optional[GoalStatus] = None, user_id: str = Depends(current_user_id)) -> List[Goal]:
    return await goal_service.list_goals(user_id, status)


@router.get("/{goal_id}")
async def get_goal(goal_id: str, user_id: str = Depends(current_user_id)) -> Goal:
    return await goal_service.get_goal_by_id(user_id, goal_id)


@router.post("/{goal_id}/progress")
async def log_progress(goal_id: str, body: ProgressInput, user_id: str = Depends(current_user_id)) -> Goal:
    return await goal_service.log_progress(user_id, goal_id, body)


@router.post("/{goal_id}/milestones")
async def add_milestone(goal_id: str, body: MilestoneInput, user_id: str = Depends(current_user_id)) -> Goal:
    return await goal_service.add_milestone(user_id, goal_id, body.title)


@router.post("/{goal_id}/milestones/{milestone_id}/complete")
async def complete_milestone(goal_id: str, milestone_id: str, user_id: str = Depends(current_user_id)) -> Goal:
    return await goal_service.complete_milestone(user_id, goal_id, milestone_id)


@router.post("/{goal_id}/tags")
async def add_tag(goal_id: str, body: TagInput, user_id: str = Depends(current_user_id)) -> Goal:
    return await goal_service.add_tag(user_id, goal_id, body.name)

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

GoalStatus = Literal["ACTIVE", "COMPLETED", "ARCHIVED"]


class ProgressEvent(BaseModel):
    id: str
    goal_id: str
    value: int = Field(ge=0, le=100)
    note: Optional[str] = None
    created_at: datetime


class Milestone(BaseModel):
    id: str
    goal_id: str
    title: str
    completed: bool = False
    completed_at: Optional[datetime] = None
    created_at: datetime


class Goal(BaseModel):
    id: str
    user_id: str
    title: str
    details: Optional[str] = None
    status: GoalStatus = "ACTIVE"
    current_progress: int = Field(default=0, ge=0, le=100)
    target_date: Optional[str] = None
    # newest first
    progress_events: List[ProgressEvent] = Field(default_factory=list)
    milestones: List[Milestone] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class GoalCandidate(BaseModel):
    id: str
    title: str
    status: GoalStatus = "ACTIVE"


class GoalCreateInput(BaseModel):
    title: str = Field(min_length=1, max_length=180)
    details: Optional[str] = Field(default=None, max_length=2000)
    target_date: Optional[str] = None
    status: GoalStatus = "ACTIVE"
    current_progress: int = Field(default=0, ge=0, le=100)
    tags: List[str] = Field(default_factory=list)


class ProgressInput(BaseModel):
    value: int = Field(ge=0, le=100)
    note: Optional[str] = Field(default=None, max_length=500)


class MilestoneInput(BaseModel):
    title: str = Field(min_length=1, max_length=180)


class TagInput(BaseModel):
    name: str = Field(min_length=1, max_length=40)

from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

from .goal import Goal, GoalCandidate, GoalStatus

CoachSource = Literal["ai", "rules"]
ConfidenceBand = Literal["low", "medium", "high"]
RiskSeverity = Literal["low", "medium", "high"]
RiskCategory = Literal["schedule", "execution", "consistency"]


class CoachPriorityItem(BaseModel):
    goalId: str
    title: str
    reason: str
    score: int


class CoachRiskItem(BaseModel):
    goalId: str
    title: str
    category: RiskCategory
    severity: RiskSeverity
    reason: str


class CoachActionItem(BaseModel):
    goalId: str
    action: str
    why: str


class CoachConfidence(BaseModel):
    value: int
    band: ConfidenceBand


class CoachSummaryMeta(BaseModel):
    generatedAt: str
    source: CoachSource
    engineVersion: str
    dataWindowDays: int


class CoachSummary(BaseModel):
    topPriorities: List[CoachPriorityItem]
    risks: List[CoachRiskItem]
    nextActions: List[CoachActionItem]
    confidence: CoachConfidence
    meta: CoachSummaryMeta


class CoachInsight(BaseModel):
    id: str
    source: CoachSource
    summary: CoachSummary
    createdAt: datetime
    expiresAt: datetime


class CoachActionCompletionRate(BaseModel):
    windowDays: int
    suggestedActions: int
    completedActions: int
    rate: int


ActionType = Literal["create_goal", "update_goal", "delete_goal"]
ProposalStatus = Literal["pending", "executed", "expired", "cancelled"]
RiskLevel = Literal["low", "high"]


class CreateGoalPayload(BaseModel):
    title: str
    details: Optional[str] = None
    targetDate: Optional[str] = None


class UpdateGoalPayload(BaseModel):
    goalId: str
    goalTitle: str
    title: Optional[str] = None
    details: Optional[str] = None
    targetDate: Optional[str] = None


class DeleteGoalPayload(BaseModel):
    goalId: str
    goalTitle: str
    previousStatus: Optional[GoalStatus] = None


class _ActionProposalBase(BaseModel):
    id: Optional[str] = None
    label: str
    expiresAt: Optional[datetime] = None
    status: ProposalStatus = "pending"


class CreateGoalProposal(_ActionProposalBase):
    type: Literal["create_goal"] = "create_goal"
    riskLevel: RiskLevel = "low"
    payload: CreateGoalPayload


class UpdateGoalProposal(_ActionProposalBase):
    type: Literal["update_goal"] = "update_goal"
    riskLevel: RiskLevel = "low"
    payload: UpdateGoalPayload


class DeleteGoalProposal(_ActionProposalBase):
    type: Literal["delete_goal"] = "delete_goal"
    riskLevel: RiskLevel = "high"
    payload: DeleteGoalPayload


ActionProposal = Annotated[
    Union[CreateGoalProposal, UpdateGoalProposal, DeleteGoalProposal],
    Field(discriminator="type"),
]

action_proposal_adapter: TypeAdapter = TypeAdapter(ActionProposal)


class IntentParseResult(BaseModel):
    proposals: List[ActionProposal] = Field(default_factory=list)
    clarification: Optional[str] = None


class CoachConversation(BaseModel):
    id: str
    title: str
    createdAt: datetime
    updatedAt: datetime


class CoachMessage(BaseModel):
    id: str
    conversationId: str
    role: Literal["user", "assistant"]
    content: str
    createdAt: datetime
    proposedActions: List[ActionProposal] = Field(default_factory=list)


class CoachChatReply(BaseModel):
    conversation: CoachConversation
    userMessage: CoachMessage
    assistantMessage: CoachMessage
    proposedActions: List[ActionProposal]


class ExecuteActionResult(BaseModel):
    resultType: Literal["goal_created", "goal_updated", "goal_deleted"]
    proposalStatus: Literal["executed"] = "executed"
    goal: Optional[Goal] = None
    goalId: Optional[str] = None
    undoExpiresAt: Optional[datetime] = None


class UndoActionResult(BaseModel):
    proposalStatus: Literal["cancelled"] = "cancelled"
    goal: Optional[Goal] = None
    goalId: str


class ChatMessageInput(BaseModel):
    conversationId: Optional[str] = None
    message: str = Field(min_length=1, max_length=2000)


class ExecuteActionInput(BaseModel):
    confirmText: Optional[str] = None


class CompleteActionInput(BaseModel):
    insightId: str


class IntentParseInput(BaseModel):
    message: str
    recentAssistantTurns: List[str] = Field(default_factory=list)
    candidateGoals: List[GoalCandidate] = Field(default_factory=list)


class SummaryComputeInput(BaseModel):
    goals: List[Goal] = Field(default_factory=list)

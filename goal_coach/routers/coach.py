from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response

from ..agent.intent_parser import parse_intent
from ..orchestrator import conversations, insights, proposals
from ..orchestrator.coach import send_chat_message
from ..orchestrator.rules import build_rules_summary
from ..schemas.coach import (
    CoachActionCompletionRate,
    CoachChatReply,
    CoachConversation,
    CoachInsight,
    CoachMessage,
    CoachSummary,
    ChatMessageInput,
    CompleteActionInput,
    ExecuteActionInput,
    ExecuteActionResult,
    IntentParseInput,
    IntentParseResult,
    SummaryComputeInput,
    UndoActionResult,
)
from .deps import current_user_id

router = APIRouter(prefix="/coach", tags=["coach"])


@router.get("/insight", response_model=Optional[CoachInsight])
async def latest_insight(user_id: str = Depends(current_user_id)):
    insight = await insights.get_latest_insight(user_id)
    if insight is None:
        return Response(status_code=204)
    return insight


@router.post("/insight/generate")
async def generate_insight(user_id: str = Depends(current_user_id)) -> CoachInsight:
    return await insights.generate_insight(user_id)


@router.get("/summary")
async def summary(user_id: str = Depends(current_user_id)) -> CoachSummary:
    return await insights.get_or_generate_summary(user_id)


@router.post("/summary/compute")
async def compute_summary(body: SummaryComputeInput, user_id: str = Depends(current_user_id)) -> CoachSummary:
    return build_rules_summary(body.goals)


@router.post("/intent/parse")
async def parse(body: IntentParseInput, user_id: str = Depends(current_user_id)) -> IntentParseResult:
    return parse_intent(body.message, body.recentAssistantTurns, body.candidateGoals)


@router.post("/actions/{goal_id}/complete", status_code=204)
async def complete_action(goal_id: str, body: CompleteActionInput, user_id: str = Depends(current_user_id)) -> Response:
    await insights.complete_action(user_id, goal_id, body.insightId)
    return Response(status_code=204)


@router.get("/completion-rate")
async def completion_rate(
    windowDays: int = Query(default=7, ge=1, le=30),
    user_id: str = Depends(current_user_id),
) -> CoachActionCompletionRate:
    return await insights.get_completion_rate(user_id, windowDays)


@router.get("/conversations")
async def list_conversations(user_id: str = Depends(current_user_id)) -> List[CoachConversation]:
    return await conversations.list_conversations(user_id)


@router.get("/conversations/{conversation_id}/messages")
async def list_messages(conversation_id: str, user_id: str = Depends(current_user_id)) -> List[CoachMessage]:
    return await conversations.list_messages(user_id, conversation_id)


@router.post("/chat")
async def chat(body: ChatMessageInput, user_id: str = Depends(current_user_id)) -> CoachChatReply:
    return await send_chat_message(user_id, body.message, body.conversationId)


@router.post("/chat/actions/{proposal_id}/execute")
async def execute_action(
    proposal_id: str,
    body: Optional[ExecuteActionInput] = None,
    user_id: str = Depends(current_user_id),
) -> ExecuteActionResult:
    confirm_text = body.confirmText if body else None
    return await proposals.execute_action_proposal(user_id, proposal_id, confirm_text)


@router.post("/chat/actions/{proposal_id}/undo")
async def undo_action(proposal_id: str, user_id: str = Depends(current_user_id)) -> UndoActionResult:
    return await proposals.undo_action_proposal(user_id, proposal_id)

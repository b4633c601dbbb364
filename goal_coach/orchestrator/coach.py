"""Coach chat: one user turn in, one assistant turn plus proposed actions out."""

import logging
from datetime import datetime
from typing import List, Optional, Sequence

import httpx

from ..agent.intent_parser import parse_intent
from ..agent.utils.dates import resolve_now
from ..config import UNDO_WINDOW_SECONDS, get_settings
from ..errors import bad_request
from ..schemas.coach import ActionProposal, CoachChatReply, IntentParseResult
from .ai import generate_coach_chat_reply
from .conversations import (
    insert_conversation,
    insert_message,
    map_conversation,
    map_message,
    messages_for,
    require_conversation,
)
from .goals import goals_for_user, to_candidates
from .insights import valid_insight
from .proposals import insert_proposals
from .rules import build_fallback_reply, build_rules_summary
from .store import coach_store

logger = logging.getLogger(__name__)

RECENT_ASSISTANT_TURNS = 3


def compose_action_reply(intent: IntentParseResult, ttl_minutes: int) -> str:
    parts: List[str] = []
    proposals: Sequence[ActionProposal] = intent.proposals
    if proposals:
        noun = "action" if len(proposals) == 1 else "actions"
        labels = "; ".join(proposal.label for proposal in proposals)
        parts.append(
            f"I drafted {len(proposals)} {noun} for you to review: {labels}. "
            f"Nothing changes until you confirm, and drafts expire in {ttl_minutes} minutes."
        )
        if any(proposal.type == "delete_goal" for proposal in proposals):
            parts.append(
                f"Deleting needs you to type DELETE when confirming. You can undo it for {UNDO_WINDOW_SECONDS} seconds."
            )
    if intent.clarification:
        parts.append(intent.clarification)
    return "\n\n".join(parts)


async def send_chat_message(
    user_id: str,
    message: str,
    conversation_id: Optional[str] = None,
    now: Optional[datetime] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> CoachChatReply:
    text = (message or "").strip()
    if not text:
        raise bad_request("Message is required")
    current = resolve_now(now)
    settings = get_settings()

    async with coach_store.transaction() as store:
        if conversation_id:
            conversation = require_conversation(store, user_id, conversation_id)
        else:
            conversation = insert_conversation(store, user_id, text, current)
        prior = messages_for(store, conversation.id)
        user_row = insert_message(store, conversation, "user", text, current)
        goals = goals_for_user(store, user_id)
        history = [map_message(store, row) for row in prior]
        cached = valid_insight(store, user_id, current)

    assistant_turns = [row.content for row in prior if row.role == "assistant"][-RECENT_ASSISTANT_TURNS:]
    intent = parse_intent(text, assistant_turns, to_candidates(goals), current)

    if intent.proposals or intent.clarification:
        reply = compose_action_reply(intent, settings.proposal_ttl_minutes)
    else:
        reply = await generate_coach_chat_reply(
            goals, cached.summary if cached else None, history, text, settings=settings, client=client
        )
        if not reply:
            reply = build_fallback_reply(build_rules_summary(goals, current))

    async with coach_store.transaction() as store:
        assistant_row = insert_message(store, conversation, "assistant", reply, current)
        proposals = insert_proposals(
            store,
            user_id,
            conversation.id,
            assistant_row.id,
            intent.proposals,
            current,
            settings.proposal_ttl_minutes,
        )
        result = CoachChatReply(
            conversation=map_conversation(store.conversations[conversation.id]),
            userMessage=map_message(store, user_row),
            assistantMessage=map_message(store, assistant_row),
            proposedActions=proposals,
        )

    logger.info(
        "Coach replied in conversation %s with %d proposal(s)%s",
        conversation.id,
        len(proposals),
        " and a clarification" if intent.clarification else "",
    )
    return result

"""Stored action proposals and the confirm/undo state machine.

A proposal moves ``pending -> executed`` exactly once, through a guarded update
whose affected-row count decides the winner. Pending rows past ``expiresAt`` are
flipped to ``expired`` when someone tries to run them. Executed deletes may move
to ``cancelled`` while the undo window is open.
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence

from ..agent.utils.dates import resolve_now
from ..agent.utils.nanoid import nanoid
from ..config import UNDO_WINDOW_SECONDS, get_settings
from ..errors import bad_request, conflict, not_found
from ..schemas.coach import (
    ActionProposal,
    CreateGoalPayload,
    ExecuteActionResult,
    UndoActionResult,
    action_proposal_adapter,
)
from .goals import insert_goal, require_goal
from .store import CoachStore, ProposalRow, coach_store

logger = logging.getLogger(__name__)

DELETE_CONFIRMATION = "DELETE"

# payload key -> goal field
UPDATE_FIELDS: Dict[str, str] = {
    "title": "title",
    "details": "details",
    "targetDate": "target_date",
}


def map_action_proposal(row: ProposalRow) -> ActionProposal:
    return action_proposal_adapter.validate_python(
        {
            "id": row.id,
            "type": row.type,
            "label": row.label,
            "payload": row.payload,
            "riskLevel": row.risk_level,
            "expiresAt": row.expires_at,
            "status": row.status,
        }
    )


def proposals_for_message(store: CoachStore, message_id: str) -> List[ActionProposal]:
    rows = [row for row in store.proposals.values() if row.message_id == message_id]
    return [map_action_proposal(row) for row in sorted(rows, key=lambda row: row.created_at)]


def insert_proposals(
    store: CoachStore,
    user_id: str,
    conversation_id: str,
    message_id: str,
    drafts: Sequence[ActionProposal],
    now: datetime,
    ttl_minutes: int,
) -> List[ActionProposal]:
    conversation = store.conversations.get(conversation_id)
    if conversation is None or conversation.user_id != user_id:
        raise not_found("Conversation not found")
    if not any(row.id == message_id and row.conversation_id == conversation_id for row in store.messages):
        raise not_found("Assistant message not found")

    expires_at = now + timedelta(minutes=ttl_minutes)
    created: List[ActionProposal] = []
    for draft in drafts:
        row = ProposalRow(
            id=nanoid(),
            user_id=user_id,
            conversation_id=conversation_id,
            message_id=message_id,
            type=draft.type,
            label=draft.label,
            payload=draft.payload.model_dump(exclude_none=True),
            risk_level=draft.riskLevel,
            expires_at=expires_at,
            created_at=now,
        )
        store.proposals[row.id] = row
        created.append(map_action_proposal(row))
    return created


async def create_action_proposals(
    user_id: str,
    conversation_id: str,
    message_id: str,
    drafts: Sequence[ActionProposal],
    now: Optional[datetime] = None,
) -> List[ActionProposal]:
    if not drafts:
        return []
    current = resolve_now(now)
    ttl_minutes = get_settings().proposal_ttl_minutes
    async with coach_store.transaction() as store:
        created = insert_proposals(store, user_id, conversation_id, message_id, drafts, current, ttl_minutes)
    logger.info(
        "Stored %d action proposal(s) for conversation %s: %s",
        len(created),
        conversation_id,
        ", ".join(proposal.type for proposal in created),
        extra={"conversation_id": conversation_id, "message_id": message_id},
    )
    return created


def _find_row(store: CoachStore, user_id: str, proposal_id: str) -> ProposalRow:
    row = store.proposals.get(proposal_id)
    if row is None or row.user_id != user_id:
        raise not_found("Action proposal not found")
    return row


async def get_action_proposal(user_id: str, proposal_id: str) -> ActionProposal:
    async with coach_store.transaction() as store:
        return map_action_proposal(_find_row(store, user_id, proposal_id))


def _apply_create(store: CoachStore, user_id: str, row: ProposalRow, now: datetime) -> ExecuteActionResult:
    payload = CreateGoalPayload(**row.payload)
    goal = insert_goal(
        store,
        user_id,
        payload.title,
        details=payload.details,
        target_date=payload.targetDate,
        now=now,
    )
    return ExecuteActionResult(resultType="goal_created", goal=goal, goalId=goal.id)


def _apply_update(store: CoachStore, user_id: str, row: ProposalRow, now: datetime) -> ExecuteActionResult:
    goal = require_goal(store, user_id, row.payload["goalId"])
    changes = {field: row.payload[key] for key, field in UPDATE_FIELDS.items() if key in row.payload}
    changes["updated_at"] = now
    updated = goal.model_copy(update=changes)
    store.goals[goal.id] = updated
    return ExecuteActionResult(resultType="goal_updated", goal=updated, goalId=updated.id)


def _apply_delete(store: CoachStore, user_id: str, row: ProposalRow, now: datetime) -> ExecuteActionResult:
    goal = require_goal(store, user_id, row.payload["goalId"])
    store.goals[goal.id] = goal.model_copy(update={"status": "ARCHIVED"})
    return ExecuteActionResult(
        resultType="goal_deleted",
        goalId=goal.id,
        undoExpiresAt=now + timedelta(seconds=UNDO_WINDOW_SECONDS),
    )


APPLIERS = {
    "create_goal": _apply_create,
    "update_goal": _apply_update,
    "delete_goal": _apply_delete,
}


async def execute_action_proposal(
    user_id: str,
    proposal_id: str,
    confirm_text: Optional[str] = None,
    now: Optional[datetime] = None,
) -> ExecuteActionResult:
    current = resolve_now(now)
    expired = False
    result: Optional[ExecuteActionResult] = None

    async with coach_store.transaction() as store:
        row = _find_row(store, user_id, proposal_id)
        claimed = store.update_proposals(
            lambda r: r.id == row.id and r.user_id == user_id and r.status == "pending" and r.expires_at > current,
            status="executed",
            executed_at=current,
        )
        if claimed == 1:
            if row.type == "delete_goal" and confirm_text != DELETE_CONFIRMATION:
                # raising here rolls the claim back
                raise bad_request("Please type DELETE to confirm.")
            result = APPLIERS[row.type](store, user_id, row, current)
            store.insights.pop(user_id, None)
        elif row.status == "pending":
            # committed before the conflict is raised
            store.update_proposals(lambda r: r.id == row.id and r.status == "pending", status="expired")
            expired = True
        else:
            logger.info(
                "Action proposal %s already %s", proposal_id, row.status, extra={"proposal_id": proposal_id, "status": row.status}
            )
            raise conflict("Action proposal already processed")

    if expired or result is None:
        logger.info("Action proposal %s expired before execution", proposal_id, extra={"proposal_id": proposal_id})
        raise conflict("Action proposal expired")

    logger.info(
        "Executed %s proposal %s for goal %s",
        row.type,
        proposal_id,
        result.goalId,
        extra={"proposal_id": proposal_id, "action_type": row.type, "goal_id": result.goalId},
    )
    return result


async def undo_action_proposal(user_id: str, proposal_id: str, now: Optional[datetime] = None) -> UndoActionResult:
    current = resolve_now(now)
    window = timedelta(seconds=UNDO_WINDOW_SECONDS)

    async with coach_store.transaction() as store:
        row = _find_row(store, user_id, proposal_id)
        if row.type != "delete_goal":
            raise bad_request("Only delete actions can be undone")

        reverted = store.update_proposals(
            lambda r: r.id == row.id
            and r.status == "executed"
            and r.executed_at is not None
            and current < r.executed_at + window,
            status="cancelled",
        )
        if reverted != 1:
            if row.status != "executed" or row.executed_at is None:
                raise conflict("Action is not undoable")
            raise conflict("Undo window expired")

        goal = require_goal(store, user_id, row.payload["goalId"])
        restored = goal.model_copy(update={"status": row.payload.get("previousStatus") or "ACTIVE"})
        store.goals[goal.id] = restored
        store.insights.pop(user_id, None)

    logger.info(
        "Undid delete proposal %s, goal %s restored to %s",
        proposal_id,
        restored.id,
        restored.status,
        extra={"proposal_id": proposal_id, "goal_id": restored.id},
    )
    return UndoActionResult(goal=restored, goalId=restored.id)

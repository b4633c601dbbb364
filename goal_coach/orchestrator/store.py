import asyncio
import copy
from contextlib import asynccontextmanager
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

from ..schemas.coach import CoachSummary
from ..schemas.goal import Goal


@dataclass(frozen=True)
class ProposalRow:
    id: str
    user_id: str
    conversation_id: str
    message_id: str
    type: str
    label: str
    payload: Dict[str, Any]
    risk_level: str
    expires_at: datetime
    created_at: datetime
    status: str = "pending"
    executed_at: Optional[datetime] = None


@dataclass(frozen=True)
class InsightRow:
    id: str
    user_id: str
    source: str
    summary: CoachSummary
    created_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class ConversationRow:
    id: str
    user_id: str
    title: Optional[str]
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class MessageRow:
    id: str
    conversation_id: str
    role: str
    content: str
    created_at: datetime


@dataclass(frozen=True)
class CompletionRow:
    id: str
    user_id: str
    goal_id: str
    insight_id: str
    completed_at: datetime


class CoachStore:
    """In-process tables for goals and coach state.

    Rows are immutable; writers swap whole rows so a shallow copy of each table is a
    consistent snapshot. ``transaction()`` serializes callers on one lock and restores
    the snapshot when the body raises.
    """

    TABLES = ("goals", "proposals", "insights", "conversations", "messages", "completions")

    def __init__(self) -> None:
        self.reset()

    def reset(self) -> None:
        self.goals: Dict[str, Goal] = {}
        self.proposals: Dict[str, ProposalRow] = {}
        # one insight per user, keyed by user id
        self.insights: Dict[str, InsightRow] = {}
        self.conversations: Dict[str, ConversationRow] = {}
        self.messages: List[MessageRow] = []
        self.completions: List[CompletionRow] = []
        self._lock = asyncio.Lock()

    def _snapshot(self) -> Dict[str, Any]:
        return {name: copy.copy(getattr(self, name)) for name in self.TABLES}

    def _restore(self, snapshot: Dict[str, Any]) -> None:
        for name, table in snapshot.items():
            setattr(self, name, table)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["CoachStore"]:
        async with self._lock:
            snapshot = self._snapshot()
            try:
                yield self
            except BaseException:
                self._restore(snapshot)
                raise

    def update_proposals(self, where: Callable[[ProposalRow], bool], **changes: Any) -> int:
        count = 0
        for row_id, row in list(self.proposals.items()):
            if where(row):
                self.proposals[row_id] = replace(row, **changes)
                count += 1
        return count


coach_store = CoachStore()

from datetime import datetime
from typing import List, Optional

from ..agent.utils.dates import resolve_now
from ..agent.utils.nanoid import nanoid
from ..agent.utils.strings import truncate
from ..errors import not_found
from ..schemas.coach import CoachConversation, CoachMessage
from .proposals import proposals_for_message
from .store import CoachStore, ConversationRow, MessageRow, coach_store

DEFAULT_TITLE = "New conversation"
TITLE_LENGTH = 60


def map_conversation(row: ConversationRow) -> CoachConversation:
    return CoachConversation(
        id=row.id,
        title=row.title or DEFAULT_TITLE,
        createdAt=row.created_at,
        updatedAt=row.updated_at,
    )


def map_message(store: CoachStore, row: MessageRow) -> CoachMessage:
    return CoachMessage(
        id=row.id,
        conversationId=row.conversation_id,
        role=row.role,  # type: ignore[arg-type]
        content=row.content,
        createdAt=row.created_at,
        proposedActions=proposals_for_message(store, row.id),
    )


def find_conversation(store: CoachStore, user_id: str, conversation_id: str) -> Optional[ConversationRow]:
    row = store.conversations.get(conversation_id)
    if row is None or row.user_id != user_id:
        return None
    return row


def require_conversation(store: CoachStore, user_id: str, conversation_id: str) -> ConversationRow:
    row = find_conversation(store, user_id, conversation_id)
    if row is None:
        raise not_found("Conversation not found")
    return row


def insert_conversation(store: CoachStore, user_id: str, title: Optional[str], now: datetime) -> ConversationRow:
    cleaned = truncate((title or "").strip(), TITLE_LENGTH) or None
    row = ConversationRow(id=nanoid(), user_id=user_id, title=cleaned, created_at=now, updated_at=now)
    store.conversations[row.id] = row
    return row


def insert_message(store: CoachStore, conversation: ConversationRow, role: str, content: str, now: datetime) -> MessageRow:
    row = MessageRow(id=nanoid(), conversation_id=conversation.id, role=role, content=content, created_at=now)
    store.messages.append(row)
    current = store.conversations[conversation.id]
    title = current.title
    if role == "user" and not title:
        title = truncate(content.strip(), TITLE_LENGTH) or None
    store.conversations[conversation.id] = ConversationRow(
        id=current.id,
        user_id=current.user_id,
        title=title,
        created_at=current.created_at,
        updated_at=now,
    )
    return row


def messages_for(store: CoachStore, conversation_id: str) -> List[MessageRow]:
    return [row for row in store.messages if row.conversation_id == conversation_id]


async def create_conversation(user_id: str, title: Optional[str] = None, now: Optional[datetime] = None) -> CoachConversation:
    async with coach_store.transaction() as store:
        return map_conversation(insert_conversation(store, user_id, title, resolve_now(now)))


async def list_conversations(user_id: str) -> List[CoachConversation]:
    async with coach_store.transaction() as store:
        rows = [row for row in store.conversations.values() if row.user_id == user_id]
    return [map_conversation(row) for row in sorted(rows, key=lambda row: row.updated_at, reverse=True)]


async def list_messages(user_id: str, conversation_id: str) -> List[CoachMessage]:
    async with coach_store.transaction() as store:
        require_conversation(store, user_id, conversation_id)
        return [map_message(store, row) for row in messages_for(store, conversation_id)]


async def add_message(
    user_id: str, conversation_id: str, role: str, content: str, now: Optional[datetime] = None
) -> CoachMessage:
    async with coach_store.transaction() as store:
        conversation = require_conversation(store, user_id, conversation_id)
        row = insert_message(store, conversation, role, content, resolve_now(now))
        return map_message(store, row)

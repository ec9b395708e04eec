"""Conversation listing, lookup and status changes."""

from typing import Dict, List

import structlog

from ..domain.errors import AccessDenied, NotFound
from ..domain.models import (
    Conversation,
    ConversationStatus,
    ConversationSummary,
    Identity,
    Message,
    SenderRole,
)
from ..repositories.base import DataAccess
from .identity import IdentityResolver
from .rows import parse_rows

logger = structlog.get_logger()

_PARTICIPANT_COLUMN = {
    SenderRole.CUSTOMER: "customer_id",
    SenderRole.SELLER: "seller_id",
}


def sort_by_activity(conversations: List[Conversation]) -> List[Conversation]:
    """Most recent activity first; equal activity falls back to id ascending.

    Ids compare as strings, which orders UUIDs consistently but puts a
    numeric-looking "10" before "9".
    """
    by_id = sorted(conversations, key=lambda c: c.id)
    return sorted(by_id, key=lambda c: c.last_activity, reverse=True)


class ConversationStore:
    """Read side of customer/seller conversations."""

    def __init__(self, data_access: DataAccess, identities: IdentityResolver) -> None:
        self.data_access = data_access
        self.identities = identities

    async def get_conversation(self, conversation_id: str) -> Conversation:
        """Fetch one conversation or raise ``NotFound``."""
        rows = await self.data_access.query(
            "conversations", filters={"id": conversation_id}, limit=1
        )
        conversations = parse_rows(Conversation.from_row, rows, "conversations")
        if not conversations:
            logger.warning("conversation_not_found", conversation_id=conversation_id)
            raise NotFound(f"Conversation {conversation_id} not found")
        return conversations[0]

    def require_participant(
        self, conversation: Conversation, participant_id: str, role: SenderRole
    ) -> None:
        """Raise ``AccessDenied`` unless the caller is a party to the conversation."""
        if not conversation.has_participant(participant_id, SenderRole(role)):
            logger.warning(
                "conversation_access_denied",
                conversation_id=conversation.id,
                participant_id=participant_id,
                role=SenderRole(role).value,
            )
            raise AccessDenied(
                f"Participant {participant_id} is not part of conversation {conversation.id}"
            )

    async def get_for_participant(
        self, conversation_id: str, participant_id: str, role: SenderRole
    ) -> Conversation:
        conversation = await self.get_conversation(conversation_id)
        self.require_participant(conversation, participant_id, role)
        return conversation

    async def list_conversations(
        self, participant_id: str, role: SenderRole
    ) -> List[ConversationSummary]:
        """List the caller's conversations, most recently active first.

        Each entry carries the other party's identity, the latest message and
        how many messages from the other party the caller has not read.
        """
        role = SenderRole(role)
        rows = await self.data_access.query(
            "conversations", filters={_PARTICIPANT_COLUMN[role]: participant_id}
        )
        conversations = parse_rows(Conversation.from_row, rows, "conversations")
        if not conversations:
            return []

        message_rows = await self.data_access.query(
            "messages",
            filters={"conversation_id": [c.id for c in conversations]},
            order_by=["created_at", "id"],
        )
        latest: Dict[str, Message] = {}
        unread: Dict[str, int] = {}
        for message in parse_rows(Message.from_row, message_rows, "messages"):
            latest[message.conversation_id] = message
            own = message.sender_id == participant_id and message.sender_type == role
            if not own and not message.is_read:
                unread[message.conversation_id] = unread.get(message.conversation_id, 0) + 1

        for conversation in conversations:
            last = latest.get(conversation.id)
            if last and (
                conversation.last_message_at is None
                or last.created_at > conversation.last_message_at
            ):
                conversation.last_message_at = last.created_at

        counterparts = await self.identities.resolve_many(
            c.counterpart(role) for c in conversations
        )

        summaries = []
        for conversation in sort_by_activity(conversations):
            key = conversation.counterpart(role)
            summaries.append(
                ConversationSummary(
                    conversation=conversation,
                    counterpart=counterparts.get(key) or Identity.placeholder(*key),
                    last_message=latest.get(conversation.id),
                    unread_count=unread.get(conversation.id, 0),
                )
            )
        logger.info(
            "conversations_listed",
            participant_id=participant_id,
            role=role.value,
            count=len(summaries),
        )
        return summaries

    async def update_status(
        self,
        conversation_id: str,
        participant_id: str,
        role: SenderRole,
        status: ConversationStatus,
    ) -> Conversation:
        """Set a conversation's status. Only its parties may do this."""
        conversation = await self.get_for_participant(conversation_id, participant_id, role)
        status = ConversationStatus(status)
        await self.data_access.update(
            "conversations", {"id": conversation.id}, {"status": status.value}
        )
        conversation.status = status
        logger.info(
            "conversation_status_updated",
            conversation_id=conversation.id,
            status=status.value,
        )
        return conversation

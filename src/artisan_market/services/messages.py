"""Message threads with sender identities."""

from typing import List

import structlog

from ..domain.models import Identity, Message, MessageWithSender, SenderRole
from ..repositories.base import DataAccess
from .conversations import ConversationStore
from .identity import IdentityResolver
from .rows import parse_rows

logger = structlog.get_logger()


def sort_thread(messages: List[Message]) -> List[Message]:
    """Oldest first, id ascending on equal timestamps.

    Ids compare as strings (UUIDs in the hosted schema), so numeric-looking
    ids are not ordered numerically.
    """
    return sorted(messages, key=lambda m: (m.created_at, m.id))


class MessageStore:
    """Reads and read-marks the messages of one conversation."""

    def __init__(
        self,
        data_access: DataAccess,
        conversations: ConversationStore,
        identities: IdentityResolver,
    ) -> None:
        self.data_access = data_access
        self.conversations = conversations
        self.identities = identities

    async def list_messages(
        self, conversation_id: str, participant_id: str, role: SenderRole
    ) -> List[MessageWithSender]:
        """Return the thread in order, each message with its sender.

        Raises ``NotFound`` for an unknown conversation and ``AccessDenied``
        when the caller is not one of its parties. A sender whose profile
        is missing gets a placeholder identity; the message is kept.
        """
        conversation = await self.conversations.get_for_participant(
            conversation_id, participant_id, role
        )
        rows = await self.data_access.query(
            "messages",
            filters={"conversation_id": conversation.id},
            order_by=["created_at", "id"],
        )
        messages = sort_thread(parse_rows(Message.from_row, rows, "messages"))
        if not messages:
            return []

        # sender_type picks the profile table; one scoped read per role
        senders = await self.identities.resolve_many(
            (m.sender_id, m.sender_type) for m in messages
        )

        thread = []
        for message in messages:
            sender = senders.get((message.sender_id, message.sender_type))
            thread.append(
                MessageWithSender(
                    message=message,
                    sender=sender or Identity.placeholder(message.sender_id, message.sender_type),
                    sender_resolved=sender is not None,
                )
            )
        logger.info("messages_listed", conversation_id=conversation.id, count=len(thread))
        return thread

    async def mark_as_read(
        self, conversation_id: str, participant_id: str, role: SenderRole
    ) -> int:
        """Mark the other party's messages in the conversation as read."""
        role = SenderRole(role)
        conversation = await self.conversations.get_for_participant(
            conversation_id, participant_id, role
        )
        # Messages in a conversation come from exactly its two parties
        other_id, other_role = conversation.counterpart(role)
        changed = await self.data_access.update(
            "messages",
            {
                "conversation_id": conversation.id,
                "sender_id": other_id,
                "sender_type": other_role.value,
            },
            {"is_read": True},
        )
        logger.info("messages_marked_read", conversation_id=conversation.id, count=changed)
        return changed

"""Domain models for the marketplace messaging and stats layer."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, computed_field

UNKNOWN_DISPLAY_NAME = "Unknown user"


def _optional_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


class SenderRole(str, Enum):
    """Which profile table a participant id resolves against."""

    CUSTOMER = "customer"
    SELLER = "seller"


class ConversationStatus(str, Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"
    CLOSED = "closed"


class Identity(BaseModel):
    """Display identity of a conversation participant."""

    id: str
    role: SenderRole
    display_name: str
    photo_url: Optional[str] = None

    @classmethod
    def placeholder(cls, participant_id: str, role: SenderRole) -> "Identity":
        return cls(id=participant_id, role=role, display_name=UNKNOWN_DISPLAY_NAME)


class Conversation(BaseModel):
    """A thread pairing one customer and one seller."""

    id: str
    customer_id: str
    seller_id: str
    product_id: Optional[str] = None
    subject: Optional[str] = None
    status: ConversationStatus = ConversationStatus.ACTIVE
    created_at: datetime
    last_message_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Conversation":
        return cls(
            id=str(row["id"]),
            customer_id=str(row["customer_id"]),
            seller_id=str(row["seller_id"]),
            product_id=_optional_str(row.get("product_id")),
            subject=row.get("subject"),
            status=row.get("status") or ConversationStatus.ACTIVE,
            created_at=row["created_at"],
            last_message_at=row.get("last_message_at"),
        )

    @property
    def last_activity(self) -> datetime:
        return self.last_message_at or self.created_at

    def has_participant(self, participant_id: str, role: SenderRole) -> bool:
        if role == SenderRole.CUSTOMER:
            return self.customer_id == participant_id
        return self.seller_id == participant_id

    def counterpart(self, role: SenderRole) -> Tuple[str, SenderRole]:
        """Id and role of the other party, seen from ``role``."""
        if role == SenderRole.CUSTOMER:
            return self.seller_id, SenderRole.SELLER
        return self.customer_id, SenderRole.CUSTOMER


class Message(BaseModel):
    """A single authored entry in a conversation."""

    id: str
    conversation_id: str
    sender_id: str
    sender_type: SenderRole
    content: str
    attachment_url: Optional[str] = None
    attachment_type: Optional[str] = None
    is_read: bool = False
    created_at: datetime

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Message":
        # Older rows carry the body as message_text
        content = row.get("content")
        if content is None:
            content = row.get("message_text") or ""
        return cls(
            id=str(row["id"]),
            conversation_id=str(row["conversation_id"]),
            sender_id=str(row["sender_id"]),
            sender_type=row["sender_type"],
            content=content,
            attachment_url=row.get("attachment_url"),
            attachment_type=row.get("attachment_type"),
            is_read=bool(row.get("is_read")),
            created_at=row["created_at"],
        )


class MessageWithSender(BaseModel):
    """Message paired with its resolved sender identity."""

    message: Message
    sender: Identity
    sender_resolved: bool = True


class ConversationSummary(BaseModel):
    """Conversation list entry as seen by one participant."""

    conversation: Conversation
    counterpart: Identity
    last_message: Optional[Message] = None
    unread_count: int = 0


class DegradedCounter(BaseModel):
    """A stats counter that could not be computed."""

    kind: str
    detail: str


class MarketplaceStats(BaseModel):
    """Marketplace-wide counters, recomputed on every request."""

    active_sellers: int = 0
    registered_customers: int = 0
    units_sold: int = 0
    degraded: Dict[str, DegradedCounter] = Field(default_factory=dict)

    @computed_field
    @property
    def is_partial(self) -> bool:
        return bool(self.degraded)

    def degraded_counters(self) -> List[str]:
        return sorted(self.degraded)

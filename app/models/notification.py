from enum import Enum
from typing import Optional
import uuid
from sqlmodel import Field, SQLModel
from datetime import datetime, timezone


class NotificationType(str, Enum):
    claim_created = "claim_created"
    claim_update = "claim_update"
    claim_approved = "claim_approved"
    claim_rejected = "claim_rejected"
    chat_message = "chat_message"
    new_ticket = "new_ticket"
    ticket_update = "ticket_update"
    item_resolved = "item_resolved"
    match_found = "match_found"


class Notification(SQLModel, table=True):
    __tablename__ = "notifications"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Ownership
    user_id: str = Field(index=True)

    # Notification fields
    type: NotificationType = Field(index=True)

    title: str
    message: str

    item_id: Optional[uuid.UUID] = Field(default=None, index=True)
    claim_id: Optional[uuid.UUID] = Field(default=None)
    thread_id: Optional[uuid.UUID] = Field(default=None)

    is_read: bool = Field(default=False)

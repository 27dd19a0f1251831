from enum import Enum
from typing import Optional
import uuid
from sqlmodel import Field, SQLModel, UniqueConstraint
from datetime import datetime, timezone


class ThreadType(str, Enum):
    support = "support"
    item_match = "item_match"
    claim_verification = "claim_verification"


class ThreadStatus(str, Enum):
    open = "open"
    in_progress = "in-progress"
    resolved = "resolved"
    closed = "closed"


TERMINAL_THREAD_STATUSES = {ThreadStatus.resolved, ThreadStatus.closed}


class SenderRole(str, Enum):
    admin = "admin"
    user = "user"
    system = "system"


class Thread(SQLModel, table=True):
    __tablename__ = "threads"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Ticket owner
    user_id: str = Field(index=True)
    assigned_admin_id: Optional[str] = None

    type: ThreadType = Field(default=ThreadType.support)
    subject: str
    description: Optional[str] = None
    status: ThreadStatus = Field(default=ThreadStatus.open, index=True)

    related_claim_id: Optional[uuid.UUID] = Field(default=None, index=True)
    related_item_id: Optional[uuid.UUID] = Field(default=None, index=True)


class Message(SQLModel, table=True):
    __tablename__ = "messages"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    thread_id: uuid.UUID = Field(foreign_key="threads.id", index=True, ondelete="CASCADE")
    seq: int  # position in the thread, starting at 1

    sender_id: str
    sender_role: SenderRole = Field(default=SenderRole.user)

    # Evidence markers such as [[CCTV:<id>]] are kept verbatim in text
    text: str = ""
    attachment: Optional[str] = None

    read: bool = Field(default=False)

    __table_args__ = (
        # Two appends racing for the same position must not both land
        UniqueConstraint(
            "thread_id",
            "seq",
            name="uq_thread_message_seq"
        ),
    )

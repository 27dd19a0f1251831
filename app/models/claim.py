from enum import Enum
from typing import Optional
import uuid
from sqlmodel import Field, SQLModel
from datetime import datetime, timezone


class ClaimStatus(str, Enum):
    submitted = "submitted"
    verification_chat = "verification-chat"
    approved = "approved"
    rejected = "rejected"


TERMINAL_CLAIM_STATUSES = {ClaimStatus.approved, ClaimStatus.rejected}


class Claim(SQLModel, table=True):
    __tablename__ = "claims"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Claimant
    claimant_id: str = Field(index=True)  # for sending notifications

    # Claimed found item
    item_id: uuid.UUID = Field(foreign_key="items.id", index=True)

    status: ClaimStatus = Field(default=ClaimStatus.submitted, index=True)

    # Content
    reason: str
    proof: Optional[str] = None
    rejection_reason: Optional[str] = None

    # Review
    reviewer_id: Optional[str] = None
    reviewed_at: Optional[datetime] = None

    # Verification chat, linked when the claim enters verification-chat
    thread_id: Optional[uuid.UUID] = Field(default=None, foreign_key="threads.id")

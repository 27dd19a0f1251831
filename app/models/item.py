from enum import Enum
from typing import Optional
import uuid
from sqlmodel import Field, SQLModel
from datetime import datetime, timezone


class ItemKind(str, Enum):
    lost = "lost"
    found = "found"


class ItemStatus(str, Enum):
    reported = "reported"  # lost, newly filed
    listed = "listed"  # found, available for claims
    match_found = "match_found"
    pending_verification = "pending_verification"
    resolved = "resolved"  # returned to owner
    closed = "closed"  # withdrawn or expired


class Item(SQLModel, table=True):
    __tablename__ = "items"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Reporter (lost) or registering admin (found)
    owner_id: str = Field(index=True)

    # Item fields
    kind: ItemKind = Field(index=True)
    title: str
    category: str
    description: str
    station: str
    mode: Optional[str] = None  # MRT / LRT / KTM
    line: Optional[str] = None
    image: Optional[str] = None  # storage key

    status: ItemStatus = Field(index=True)

    # Claim currently holding this item, cleared when that claim is decided
    active_claim_id: Optional[uuid.UUID] = Field(default=None, index=True)

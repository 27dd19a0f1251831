from typing import Optional
import uuid
from sqlmodel import Field, SQLModel
from datetime import datetime, timezone


class CCTVClip(SQLModel, table=True):
    __tablename__ = "cctv_clips"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    station: str = Field(index=True)
    camera_location: str
    recorded_at: datetime
    duration: str  # mm:ss as shown on the footage
    thumbnail: Optional[str] = None  # storage key or external URL
    notes: Optional[str] = None

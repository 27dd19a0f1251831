import uuid
from typing import Literal, Optional
from pydantic import BaseModel, Field, field_validator

CATEGORIES = (
    "Electronics",
    "Clothing",
    "Personal Accessories",
    "Documents",
    "Bags",
    "Other",
)

TRANSIT_MODES = ("MRT", "LRT", "KTM")


class ValidatedCreateItem(BaseModel):
    kind: Literal["lost", "found"]
    title: str = Field(min_length=3, max_length=60)
    description: str = Field(min_length=10, max_length=500)
    category: Literal[CATEGORIES]
    station: str = Field(min_length=2, max_length=60)
    mode: Optional[Literal[TRANSIT_MODES]] = None
    line: Optional[str] = Field(default=None, max_length=60)
    image: Optional[str] = None

    @field_validator("title", "description", "station", "line", mode="before")
    @classmethod
    def strip_strings(cls, value):
        if isinstance(value, str):
            return value.strip()
        return value


class ValidatedClaim(BaseModel):
    item_id: uuid.UUID
    reason: str = Field(max_length=500)
    proof: Optional[str] = Field(default=None, max_length=1000)

    @field_validator("reason", "proof", mode="before")
    @classmethod
    def strip_strings(cls, value):
        if isinstance(value, str):
            return value.strip()
        return value

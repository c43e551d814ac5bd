from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator

MilestoneTypeName = Literal["feature", "release", "fix", "internal"]


def _clean_tags(v: list[str] | None) -> list[str] | None:
    if v is None:
        return v
    return [t.strip() for t in v if t and t.strip()]


class MilestoneCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    type: MilestoneTypeName = "feature"
    tags: list[str] = []

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Title must not be blank")
        return v.strip()

    @field_validator("tags")
    @classmethod
    def strip_tags(cls, v):
        return _clean_tags(v)


class MilestoneUpdate(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = None
    type: MilestoneTypeName | None = None
    tags: list[str] | None = None
    completed: bool | None = None

    @field_validator("title", "description", "type", "tags")
    @classmethod
    def not_null(cls, v):
        # Omit a field to leave it unchanged; null is not a value for it
        if v is None:
            raise ValueError("Field may be omitted but not null")
        return v

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: str | None) -> str | None:
        if v is not None and not v.strip():
            raise ValueError("Title must not be blank")
        return v.strip() if v is not None else v

    @field_validator("tags")
    @classmethod
    def strip_tags(cls, v):
        return _clean_tags(v)


class ReorderRequest(BaseModel):
    # Incomplete milestone ids in their new relative order
    ordered_ids: list[str]


class MilestoneResponse(BaseModel):
    id: str
    title: str
    description: str
    type: MilestoneTypeName
    tags: list[str]
    completed: bool
    order: int
    user_id: str | None = None
    date: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from novelhub.paywall.models import AccessReason, ContentMode, RentalInfo


class ChapterOut(BaseModel):
    """Chapter as a reader sees it; content is absent when access is denied."""

    id: str
    novel_id: str
    module_id: str
    title: str
    order: int
    mode: ContentMode
    effective_mode: ContentMode
    chapter_balance: int = 0
    content: str | None = None
    updated_at: datetime | None = None
    access_denied: bool = False
    access_reason: AccessReason
    access_message: str | None = None
    rental_info: RentalInfo | None = None


class ChapterCreateIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    module_id: str
    title: str = Field(..., min_length=1, max_length=500)
    content: str = ""
    mode: ContentMode = ContentMode.PUBLISHED
    chapter_balance: int | None = None

    @field_validator("chapter_balance", mode="before")
    @classmethod
    def coerce_balance(cls, v):
        if v is None or v == "":
            return None
        return int(v)


class ChapterUpdateIn(BaseModel):
    model_config = ConfigDict(extra="ignore")  # редактор присылает footnotes, wordCount и т.д.

    title: str | None = Field(None, max_length=500)
    content: str | None = None
    mode: ContentMode | None = None
    chapter_balance: int | None = None

    @field_validator("chapter_balance", mode="before")
    @classmethod
    def coerce_balance(cls, v):
        if v is None or v == "":
            return None
        return int(v)


class ChapterAdminOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    novel_id: str
    module_id: str
    title: str
    order: int
    mode: ContentMode
    chapter_balance: int
    originally_draft: bool
    updated_at: datetime

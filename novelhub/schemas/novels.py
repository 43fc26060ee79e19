from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from novelhub.schemas.modules import UnlockedOut


class ContributionIn(BaseModel):
    amount: int = Field(..., gt=0)
    note: str = Field("", max_length=500)


class ContributionOut(BaseModel):
    novel_id: str
    amount: int
    user_balance: int
    novel_budget: int
    novel_balance: int
    unlocked: list[UnlockedOut] = Field(default_factory=list)


class ContributionHistoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    novel_id: str
    user_id: str | None = None
    amount: int
    note: str
    budget_after: int
    balance_after: int | None = None
    type: str
    created_at: datetime


class UnlockRunOut(BaseModel):
    novel_id: str
    unlocked: list[UnlockedOut] = Field(default_factory=list)

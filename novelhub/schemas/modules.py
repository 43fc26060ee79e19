from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from novelhub.paywall.models import ContentMode


class ModuleUpdateIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: str | None = Field(None, max_length=500)
    mode: ContentMode | None = None
    module_balance: int | None = Field(None, ge=0)


class ModuleOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    novel_id: str
    title: str
    order: int
    mode: ContentMode
    module_balance: int
    rent_balance: int
    updated_at: datetime


class RentalOut(BaseModel):
    id: str
    module_id: str
    novel_id: str
    amount_paid: int
    start_time: datetime
    end_time: datetime
    time_remaining_seconds: float = Field(..., ge=0)


class UnlockedOut(BaseModel):
    kind: str
    id: str
    module_id: str
    title: str
    new_mode: ContentMode
    price: int


class RentOut(BaseModel):
    message: str
    rental: RentalOut
    user_balance: int
    unlocked: list[UnlockedOut] = Field(default_factory=list)


class RentalStatusOut(BaseModel):
    has_active_rental: bool
    rental: dict | None = None


class RentRecalculationOut(BaseModel):
    total: int
    updated: int
    errors: list[dict] = Field(default_factory=list)

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class SubscribeRequest(BaseModel):
    user_id: int = Field(alias="userId", gt=0)
    level: int
    duration: int = Field(gt=0)


class ExtendRequest(BaseModel):
    """planId: 1 → 1 месяц, 2 → 6 месяцев, иначе 12. level по умолчанию текущий."""
    user_id: int = Field(alias="userId", gt=0)
    plan_id: int = Field(alias="planId")
    level: int | None = None


class SubscriptionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    level: int
    start_date: datetime
    end_date: datetime


class SubscriptionStatusOut(SubscriptionOut):
    active: bool
    days_remaining: int

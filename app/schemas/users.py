from datetime import datetime

from pydantic import BaseModel, ConfigDict


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    telegram_id: str
    username: str | None
    first_name: str | None = None
    last_name: str | None = None
    created_at: datetime

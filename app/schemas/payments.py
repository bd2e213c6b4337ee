from pydantic import BaseModel, Field


class PayRequest(BaseModel):
    """Hosted checkout: description carries "{userId}_{level}_{duration}"."""
    amount: float = Field(gt=0)
    currency: str = "RUB"
    description: str
    email: str | None = None


class CreatePaymentRequest(BaseModel):
    user_id: int = Field(alias="userId", gt=0)
    level: int
    duration: int = Field(gt=0)
    email: str | None = None

"""
Telegram login for the mini app: upsert the user by telegram id and return the row.
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.schemas.users import UserOut
from app.services.users.service import UserService

router = APIRouter(tags=["auth"])


@router.get("/auth/telegram", response_model=UserOut)
def telegram_login(
    telegram_id: str = Query(..., alias="id", min_length=1),
    username: str | None = None,
    first_name: str | None = None,
    last_name: str | None = None,
    db: Session = Depends(get_db),
):
    return UserService(db).get_or_create_user(
        telegram_id,
        username=username,
        first_name=first_name,
        last_name=last_name,
    )

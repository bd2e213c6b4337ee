"""
Subscription endpoints for the admin front end (manual grants, status lookup).
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.api.deps import require_admin_key
from app.db.session import get_db
from app.schemas.subscriptions import (
    ExtendRequest,
    SubscribeRequest,
    SubscriptionOut,
    SubscriptionStatusOut,
)
from app.services.audit.service import ACTOR_ADMIN, AuditService
from app.services.plans import is_valid_tier, plan_id_to_months
from app.services.subscriptions.service import SubscriptionService
from app.services.users.service import UserService

router = APIRouter(prefix="/api/subscription", tags=["subscriptions"])


def _require_user(db: Session, user_id: int) -> None:
    if UserService(db).get(user_id) is None:
        raise HTTPException(status_code=404, detail="User not found")


@router.post("/subscribe", response_model=SubscriptionOut, dependencies=[Depends(require_admin_key)])
def subscribe(payload: SubscribeRequest, db: Session = Depends(get_db)):
    if not is_valid_tier(payload.level):
        raise HTTPException(status_code=400, detail="Unknown level")
    _require_user(db, payload.user_id)
    subscription = SubscriptionService(db).subscribe(payload.user_id, payload.level, payload.duration)
    AuditService(db).log(
        actor_type=ACTOR_ADMIN,
        actor_id=None,
        action="subscription_subscribe",
        entity_type="subscription",
        entity_id=str(subscription.id),
        payload={"user_id": payload.user_id, "level": payload.level, "months": payload.duration},
    )
    db.commit()
    db.refresh(subscription)
    return subscription


@router.post("/extend", response_model=SubscriptionOut, dependencies=[Depends(require_admin_key)])
def extend(payload: ExtendRequest, db: Session = Depends(get_db)):
    _require_user(db, payload.user_id)
    svc = SubscriptionService(db)
    current = svc.get_current(payload.user_id)
    level = payload.level or (current.level if current else None)
    if level is None:
        raise HTTPException(status_code=404, detail="Subscription not found")
    if not is_valid_tier(level):
        raise HTTPException(status_code=400, detail="Unknown level")
    months = plan_id_to_months(payload.plan_id)
    subscription = svc.extend(payload.user_id, level, months)
    AuditService(db).log(
        actor_type=ACTOR_ADMIN,
        actor_id=None,
        action="subscription_extend",
        entity_type="subscription",
        entity_id=str(subscription.id),
        payload={"user_id": payload.user_id, "level": level, "months": months, "plan_id": payload.plan_id},
    )
    db.commit()
    db.refresh(subscription)
    return subscription


@router.get("/status/{user_id}", response_model=SubscriptionStatusOut)
def status(user_id: int, db: Session = Depends(get_db)):
    current = SubscriptionService(db).status(user_id)
    if current.subscription_id is None:
        raise HTTPException(status_code=404, detail="Subscription not found")
    return SubscriptionStatusOut(
        id=current.subscription_id,
        user_id=current.user_id,
        level=current.level,
        start_date=current.start_date,
        end_date=current.end_date,
        active=current.active,
        days_remaining=current.days_remaining,
    )

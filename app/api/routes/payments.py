"""
Payment routes: checkout links and provider notifications.

Notifications are authenticated by the provider, reconciled in one DB transaction,
answered with the provider's exact ack; invite links and messages go out afterwards
as background tasks.
"""
import json
import logging
from decimal import Decimal
from urllib.parse import parse_qsl

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, Response
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.core.config import settings
from app.core.errors import (
    AuthenticationFailed,
    MalformedCorrelation,
    PaymentGatewayError,
    SubscriptionBotError,
    UnknownUser,
)
from app.db.session import get_db
from app.schemas.payments import CreatePaymentRequest, PayRequest
from app.services.payments.base import PaymentOrder, PaymentProvider, ProviderResponse
from app.services.payments.correlation import decode_correlation
from app.services.payments.factory import PaymentProviderFactory
from app.services.payments.hooks import run_post_commit_hooks
from app.services.payments.service import PaymentReconciliationService, create_payment_link
from app.services.users.service import UserService
from app.utils.metrics import payment_notifications_total

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["payments"])


def get_cloudpayments_provider() -> PaymentProvider:
    return PaymentProviderFactory.create_from_settings(settings, "cloudpayments")


def get_signed_redirect_provider() -> PaymentProvider:
    return PaymentProviderFactory.create_from_settings(settings, "signed_redirect")


def get_default_provider() -> PaymentProvider:
    return PaymentProviderFactory.create_from_settings(settings)


def to_response(reply: ProviderResponse) -> Response:
    if reply.media_type == "application/json":
        return JSONResponse(content=reply.content, status_code=reply.status_code)
    return Response(content=reply.content, status_code=reply.status_code, media_type=reply.media_type)


def parse_fields(raw_body: bytes, content_type: str) -> dict:
    """Providers post either JSON or application/x-www-form-urlencoded."""
    if "application/json" in content_type:
        try:
            data = json.loads(raw_body or b"{}")
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}
    return dict(parse_qsl(raw_body.decode("utf-8", errors="replace"), keep_blank_values=True))


def _reject(provider: PaymentProvider, error: SubscriptionBotError, outcome: str) -> Response:
    payment_notifications_total.labels(provider=provider.name, outcome=outcome).inc()
    logger.warning(
        "payment_notification_rejected",
        extra={"provider": provider.name, "outcome": outcome, "error": str(error)},
    )
    return to_response(provider.rejection(error))


def process_notification(
    provider: PaymentProvider,
    fields: dict,
    headers: dict,
    raw_body: bytes,
    client_host: str | None,
    db: Session,
    background_tasks: BackgroundTasks,
) -> Response:
    try:
        notification = provider.parse_notification(fields, headers, raw_body, client_host)
    except AuthenticationFailed as e:
        return _reject(provider, e, "rejected_auth")
    except MalformedCorrelation as e:
        return _reject(provider, e, "rejected_correlation")

    try:
        result = PaymentReconciliationService(db).reconcile(notification)
    except MalformedCorrelation as e:
        return _reject(provider, e, "rejected_correlation")
    except UnknownUser as e:
        return _reject(provider, e, "unknown_user")

    if result.grant is not None:
        background_tasks.add_task(run_post_commit_hooks, result.grant)
    return to_response(provider.acknowledgement())


async def _handle_notification(
    request: Request,
    provider: PaymentProvider,
    db: Session,
    background_tasks: BackgroundTasks,
) -> Response:
    raw_body = await request.body()
    fields = parse_fields(raw_body, request.headers.get("content-type", ""))
    client_host = request.client.host if request.client else None
    return await run_in_threadpool(
        process_notification,
        provider,
        fields,
        dict(request.headers),
        raw_body,
        client_host,
        db,
        background_tasks,
    )


@router.post("/cloudpayments/webhook")
async def cloudpayments_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    provider: PaymentProvider = Depends(get_cloudpayments_provider),
    db: Session = Depends(get_db),
):
    return await _handle_notification(request, provider, db, background_tasks)


@router.post("/payment/callback")
async def payment_callback(
    request: Request,
    background_tasks: BackgroundTasks,
    provider: PaymentProvider = Depends(get_signed_redirect_provider),
    db: Session = Depends(get_db),
):
    return await _handle_notification(request, provider, db, background_tasks)


@router.post("/cloudpayments/pay")
def cloudpayments_pay(payload: PayRequest, provider: PaymentProvider = Depends(get_cloudpayments_provider)):
    try:
        decode_correlation(payload.description)
    except MalformedCorrelation:
        raise HTTPException(status_code=400, detail="description must be userId_level_duration")
    order = PaymentOrder(
        amount=Decimal(str(payload.amount)),
        currency=payload.currency,
        description=payload.description,
        email=payload.email,
    )
    try:
        link = provider.create_payment(order)
    except PaymentGatewayError as e:
        logger.error("payment_link_failed", extra={"provider": provider.name, "error": str(e)})
        raise HTTPException(status_code=502, detail="Payment provider unavailable")
    return {"paymentLink": link.url}


@router.post("/payment/create")
def create_payment(
    payload: CreatePaymentRequest,
    provider: PaymentProvider = Depends(get_default_provider),
    db: Session = Depends(get_db),
):
    if UserService(db).get(payload.user_id) is None:
        raise HTTPException(status_code=404, detail="User not found")
    try:
        link = create_payment_link(provider, payload.user_id, payload.level, payload.duration, email=payload.email)
    except ValueError:
        raise HTTPException(status_code=400, detail="Unknown plan")
    except PaymentGatewayError as e:
        logger.error("payment_link_failed", extra={"provider": provider.name, "error": str(e)})
        raise HTTPException(status_code=502, detail="Payment provider unavailable")
    return {"paymentLink": link.url, "provider": link.provider}

"""
Telegram bot using aiogram 3.x
/start → tier → duration → payment link; mini app and admin panel buttons;
join enforcement for the gated chats.
"""
import asyncio
import logging
import os
from contextlib import contextmanager
from typing import Generator

from aiogram import Bot, Dispatcher, F, Router
from aiogram.filters import JOIN_TRANSITION, ChatMemberUpdatedFilter, CommandStart
from aiogram.types import CallbackQuery, ChatMemberUpdated, ErrorEvent, FSInputFile, Message
from sqlalchemy.orm import Session

from app.bot.keyboards import (
    ADMIN_PANEL,
    DURATION_PREFIX,
    LEVEL_PREFIX,
    OPEN_APP,
    PAY_PREFIX,
    durations_keyboard,
    pay_keyboard,
    parse_level,
    parse_plan_callback,
    start_keyboard,
    url_keyboard,
    web_app_keyboard,
)
from app.core.config import settings
from app.core.errors import PaymentGatewayError
from app.core.logging import configure_logging
from app.db.session import SessionLocal
from app.services.membership.service import enforced_chats, evaluate_member
from app.services.payments.factory import PaymentProviderFactory
from app.services.payments.service import create_payment_link
from app.services.plans import TIER_TITLES, format_duration
from app.services.subscriptions.service import SubscriptionService
from app.services.users.service import UserService
from app.utils.metrics import membership_removals_total

configure_logging()
logger = logging.getLogger("bot")

router = Router()

WELCOME_TEXT = (
    "Добро пожаловать в сообщество радикального саморазвития\n\n"
    "В мире, где большинство живет на автопилоте, мы создаем среду для тех, кто берет "
    "ответственность за свою жизнь. Здесь нет случайных людей — только те, кто выбрал путь развития.\n\n"
    "Что ты получишь:\n"
    "✔ Системное саморазвитие — не просто советы, а пошаговую стратегию роста.\n"
    "✔ Психология силы — дисциплина, управление собой, достижение целей.\n"
    "✔ Физическая мощь — тренировки, нутрицевтика, восстановление.\n"
    "✔ Развитие интеллекта — стратегическое мышление, контроль эмоций.\n"
    "✔ Среда сильных — предприниматели, бойцы, элитные спортсмены, профессионалы.\n\n"
    "Если ты не готов меняться — проходи мимо. Если готов — добро пожаловать."
)

LEVEL_TEXTS = {
    1: (
        "Выберите срок подписки для Уровня 1:\n\n"
        "Доступ ко всему, что изменит твое восприятие реальности.\n"
        " • Закрытые лекции и статьи.\n"
        " • Материалы по биохакингу, тренировкам, психологии и философии.\n"
        " • Закрытая библиотека знаний."
    ),
    2: (
        "Выберите срок подписки для Уровня 2:\n\n"
        "Включает всё из первого тарифа, плюс:\n"
        " • Чат, где кураторы разбирают твои вопросы и ситуации.\n"
        " • Общение с другими участниками.\n"
        " • Живые встречи несколько раз в месяц."
    ),
}

ERROR_TEXT = "Произошла ошибка. Попробуйте позже."
PAYMENT_ERROR_TEXT = "Произошла ошибка при создании платежа. Пожалуйста, попробуйте позже."
NO_SUBSCRIPTION_TEXT = "У вас нет активной подписки. Подпишитесь на один из тарифов."


# ===========================================
# Database session context manager
# ===========================================
@contextmanager
def get_db_session() -> Generator[Session, None, None]:
    """
    Context manager for database sessions.
    Handles commit on success and rollback on error.
    """
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def is_admin(telegram_id: str) -> bool:
    return telegram_id in settings.admin_telegram_ids_set


@router.message(CommandStart())
async def cmd_start(message: Message):
    """Handle /start: register the user and show tiers."""
    telegram_id = str(message.from_user.id)
    u = message.from_user
    try:
        with get_db_session() as db:
            UserService(db).get_or_create_user(
                telegram_id,
                username=u.username,
                first_name=u.first_name,
                last_name=u.last_name,
            )

        kb = start_keyboard(is_admin(telegram_id))
        if os.path.exists(settings.welcome_video_path):
            await message.answer_video(
                video=FSInputFile(settings.welcome_video_path),
                caption=WELCOME_TEXT,
                reply_markup=kb,
            )
        else:
            await message.answer(WELCOME_TEXT, reply_markup=kb)
        logger.info("start", extra={"telegram_id": telegram_id})
    except Exception:
        logger.exception("Error in cmd_start", extra={"telegram_id": telegram_id})
        await message.answer(ERROR_TEXT)


@router.callback_query(F.data.startswith(LEVEL_PREFIX))
async def choose_level(callback: CallbackQuery):
    tier = parse_level(callback.data)
    if tier is None:
        await callback.answer()
        return
    await callback.message.answer(LEVEL_TEXTS[tier], reply_markup=durations_keyboard(tier))
    await callback.answer()


@router.callback_query(F.data.startswith(DURATION_PREFIX))
async def choose_duration(callback: CallbackQuery):
    plan = parse_plan_callback(callback.data)
    if plan is None:
        await callback.answer()
        return
    tier, months = plan
    await callback.message.answer(
        f"Отлично, подписка на {TIER_TITLES[tier]} на {format_duration(months)}. "
        "Для оформления нажмите «Оплатить».",
        reply_markup=pay_keyboard(tier, months),
    )
    await callback.answer()


@router.callback_query(F.data.startswith(PAY_PREFIX))
async def pay(callback: CallbackQuery):
    telegram_id = str(callback.from_user.id)
    plan = parse_plan_callback(callback.data)
    if plan is None:
        await callback.answer()
        return
    tier, months = plan
    try:
        with get_db_session() as db:
            user = UserService(db).get_by_telegram_id(telegram_id)
            user_id = user.id if user else None
        if user_id is None:
            await callback.message.answer("Сначала нажмите /start.")
            await callback.answer()
            return

        provider = PaymentProviderFactory.create_from_settings(settings)
        link = await asyncio.to_thread(create_payment_link, provider, user_id, tier, months)
        await callback.message.answer(
            "Оплатите подписку по ссылке:",
            reply_markup=url_keyboard("Оплатить", link.url),
        )
    except PaymentGatewayError as e:
        logger.warning("payment_link_failed", extra={"telegram_id": telegram_id, "error": str(e)})
        await callback.message.answer(PAYMENT_ERROR_TEXT)
    except Exception:
        logger.exception("Error in pay", extra={"telegram_id": telegram_id})
        await callback.message.answer(PAYMENT_ERROR_TEXT)
    await callback.answer()


@router.callback_query(F.data == OPEN_APP)
async def open_app(callback: CallbackQuery):
    telegram_id = str(callback.from_user.id)
    try:
        with get_db_session() as db:
            user = UserService(db).get_by_telegram_id(telegram_id)
            active = False
            if user:
                svc = SubscriptionService(db)
                active = svc.is_active(svc.get_current(user.id))
        if not active:
            await callback.message.answer(NO_SUBSCRIPTION_TEXT)
        else:
            await callback.message.answer(
                "Открыть мини-приложение",
                reply_markup=web_app_keyboard(
                    "Открыть мини-приложение",
                    f"{settings.mini_app_url}/login?chatId={telegram_id}",
                ),
            )
    except Exception:
        logger.exception("Error in open_app", extra={"telegram_id": telegram_id})
        await callback.message.answer(ERROR_TEXT)
    await callback.answer()


@router.callback_query(F.data == ADMIN_PANEL)
async def admin_panel(callback: CallbackQuery):
    telegram_id = str(callback.from_user.id)
    if not is_admin(telegram_id):
        await callback.answer()
        return
    await callback.message.answer(
        "Открыть админ-панель",
        reply_markup=web_app_keyboard("Открыть админ-панель", f"{settings.mini_app_url}/admin"),
    )
    await callback.answer()


@router.chat_member(ChatMemberUpdatedFilter(member_status_changed=JOIN_TRANSITION))
async def on_member_joined(event: ChatMemberUpdated, bot: Bot):
    """Remove joiners without a record or an entitlement for this chat."""
    chat_id = str(event.chat.id)
    chat = next((c for c in enforced_chats() if c.chat_id == chat_id), None)
    if chat is None:
        return
    member = event.new_chat_member
    telegram_id = str(member.user.id)
    if member.user.is_bot:
        return
    member_status = getattr(member.status, "value", member.status)

    with get_db_session() as db:
        user = UserService(db).get_by_telegram_id(telegram_id)
        subscription = SubscriptionService(db).entitlement_for(user.id, chat.min_tier) if user else None
        reason = evaluate_member(member_status, user, subscription, chat.min_tier)

    if reason:
        await bot.ban_chat_member(chat_id=event.chat.id, user_id=member.user.id)
        await bot.unban_chat_member(chat_id=event.chat.id, user_id=member.user.id, only_if_banned=True)
        membership_removals_total.labels(reason=reason).inc()
        logger.info(
            "member_removed_on_join",
            extra={"chat_id": chat_id, "telegram_id": telegram_id, "reason": reason},
        )


async def on_error(event: ErrorEvent, *args, **kwargs):
    """Global error handler."""
    logger.exception(
        "Error in handler",
        extra={"error": str(event.exception)},
    )


async def main():
    """Start the bot."""
    logger.info("Starting bot...")
    bot = Bot(token=settings.telegram_bot_token)
    dp = Dispatcher()
    dp.errors.register(on_error)
    dp.include_router(router)

    # Polling: webhook must be removed first
    await bot.delete_webhook(drop_pending_updates=True)
    logger.info("Bot started successfully!")
    try:
        await dp.start_polling(
            bot,
            allowed_updates=["message", "callback_query", "chat_member"],
        )
    finally:
        await bot.session.close()


if __name__ == "__main__":
    asyncio.run(main())

"""
Telegram client wrapper using httpx sync client.
Provides sync interface for Celery workers and post-payment hooks (no event loop issues).
Every call is bounded by settings.http_client_timeout.
"""
import time
import logging
from datetime import datetime

import httpx

from app.core.config import settings
from app.core.errors import TelegramAPIError, TransientIOError
from app.utils.metrics import (
    telegram_requests_total,
    telegram_request_duration_seconds,
)


logger = logging.getLogger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org"


class TelegramClient:
    """
    Sync Telegram client for Celery workers.
    Uses httpx sync client - no event loop issues.
    """

    def __init__(self, token: str | None = None, timeout: float | None = None) -> None:
        self._token = token or settings.telegram_bot_token
        self._base_url = f"{TELEGRAM_API_BASE}/bot{self._token}"
        self._timeout = timeout if timeout is not None else settings.http_client_timeout
        self._client: httpx.Client | None = None

    @property
    def client(self) -> httpx.Client:
        """Lazy initialization of httpx client."""
        if self._client is None:
            self._client = httpx.Client(timeout=self._timeout)
        return self._client

    def _record_request(self, method: str, status: str, duration: float) -> None:
        telegram_requests_total.labels(method=method, status=status).inc()
        telegram_request_duration_seconds.labels(method=method).observe(duration)

    def _api_call(self, method: str, data: dict | None = None) -> dict:
        """Make API call to Telegram. Raises TelegramAPIError / TransientIOError."""
        url = f"{self._base_url}/{method}"
        start = time.time()
        try:
            resp = self.client.post(url, json=data)
            result = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            self._record_request(method, "error", time.time() - start)
            raise TransientIOError(f"{method}: {type(e).__name__}", detail={"error": str(e)}) from e
        if not result.get("ok"):
            self._record_request(method, "error", time.time() - start)
            error_desc = result.get("description", "Unknown error")
            error_code = result.get("error_code", 0)
            logger.warning(f"Telegram API error: {method} -> {error_code}: {error_desc}")
            raise TelegramAPIError(f"{error_code}: {error_desc}", error_code=error_code)
        self._record_request(method, "success", time.time() - start)
        return result

    def send_message(
        self,
        chat_id: str,
        text: str,
        reply_markup: dict | None = None,
        parse_mode: str | None = None,
    ) -> dict:
        """Send text message to chat."""
        data = {"chat_id": int(chat_id), "text": text}
        if reply_markup:
            data["reply_markup"] = reply_markup
        if parse_mode:
            data["parse_mode"] = parse_mode
        try:
            return self._api_call("sendMessage", data)
        except TransientIOError as e:
            logger.error("Failed to send message", extra={"error": str(e), "chat_id": chat_id})
            raise

    def create_chat_invite_link(
        self,
        chat_id: str,
        expire_date: datetime | None = None,
        member_limit: int | None = None,
        name: str | None = None,
    ) -> str:
        """Create an invite link; returns the link URL."""
        data: dict = {"chat_id": int(chat_id)}
        if expire_date is not None:
            data["expire_date"] = int(expire_date.timestamp())
        if member_limit:
            data["member_limit"] = member_limit
        if name:
            data["name"] = name[:32]
        result = self._api_call("createChatInviteLink", data)
        return result["result"]["invite_link"]

    def get_chat_member_status(self, chat_id: str, user_id: str) -> str:
        """creator / administrator / member / restricted / left / kicked."""
        result = self._api_call("getChatMember", {"chat_id": int(chat_id), "user_id": int(user_id)})
        return (result.get("result") or {}).get("status", "")

    def ban_chat_member(self, chat_id: str, user_id: str, until_date: datetime | None = None) -> None:
        data: dict = {"chat_id": int(chat_id), "user_id": int(user_id)}
        if until_date is not None:
            data["until_date"] = int(until_date.timestamp())
        self._api_call("banChatMember", data)

    def unban_chat_member(self, chat_id: str, user_id: str, only_if_banned: bool = True) -> None:
        self._api_call(
            "unbanChatMember",
            {"chat_id": int(chat_id), "user_id": int(user_id), "only_if_banned": only_if_banned},
        )

    def kick_chat_member(self, chat_id: str, user_id: str) -> None:
        """Remove from chat without a permanent ban: the user may rejoin via a new invite link."""
        self.ban_chat_member(chat_id, user_id)
        self.unban_chat_member(chat_id, user_id, only_if_banned=True)

    def close(self) -> None:
        """Close httpx client."""
        if self._client is not None:
            try:
                self._client.close()
            except Exception as e:
                logger.warning("Failed to close client", extra={"error": str(e)})
            finally:
                self._client = None

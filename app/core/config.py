"""
Application configuration.
All settings are loaded from environment variables.
Use env.example as a reference for required variables.
"""
from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    IMPORTANT: Credentials have no defaults - they MUST be set in .env file.
    """

    # ===========================================
    # APPLICATION
    # ===========================================
    app_env: str = "local"
    # CORS: через запятую. Пусто = дефолтный список в коде (mini app + localhost).
    cors_origins: str = ""

    # ===========================================
    # DATABASE (PostgreSQL)
    # ===========================================
    database_url: str  # Required, no default

    # ===========================================
    # REDIS & CELERY
    # ===========================================
    redis_url: str  # Required, no default
    celery_broker_url: str  # Required, no default
    celery_result_backend: str  # Required, no default

    # ===========================================
    # TELEGRAM BOT
    # ===========================================
    telegram_bot_token: str  # Required, no default
    # Закрытая группа/канал уровня 1. Пример: -1002451832857
    telegram_group_id: str  # Required, no default
    # Закрытый чат уровня 2. Пусто = вторая ссылка ведёт в ту же группу.
    telegram_aux_chat_id: str = ""
    invite_link_ttl_seconds: int = 3600
    invite_link_member_limit: int = 1
    # Видео для /start (относительно рабочей директории). Если файла нет, только текст.
    welcome_video_path: str = "video.mp4"
    community_url: str = "https://telegra.ph/Soobshchestvo-BAGUVIX-03-05"
    mini_app_url: str = "https://baguvix-mini-app.vercel.app"

    # ===========================================
    # ADMIN
    # ===========================================
    # Telegram ID администраторов через запятую (кнопка «Админ-панель» в боте)
    admin_telegram_ids: str = ""
    admin_api_key: str | None = None  # Optional, but recommended

    # ===========================================
    # PAYMENTS
    # ===========================================
    payment_provider: str = "cloudpayments"  # cloudpayments, signed_redirect
    payment_currency: str = "RUB"
    # Отклонять уведомления, где сумма меньше цены тарифа или срок не продаётся
    enforce_plan_prices: bool = True
    # Доверенные IP платёжных шлюзов (через запятую), если подпись недоступна
    trusted_payment_ips: str = ""

    # CloudPayments (hosted checkout)
    cloudpayments_public_id: str = ""
    cloudpayments_api_secret: str = ""
    cloudpayments_api_url: str = "https://api.cloudpayments.ru"
    cloudpayments_verify_hmac: bool = True

    # Signed redirect gateway
    signed_gateway_url: str = ""
    signed_gateway_merchant_id: str = ""
    signed_gateway_secret: str = ""

    # ===========================================
    # SCHEDULED JOBS
    # ===========================================
    membership_sweep_interval_seconds: int = 3600
    membership_sweep_lock_ttl: int = 3300
    expiry_reminder_window_days: int = 3
    expiry_reminder_hour_utc: int = 0

    # ===========================================
    # INTERNAL SERVICES
    # ===========================================
    http_client_timeout: float = 10.0

    # ===========================================
    # CIRCUIT BREAKER
    # ===========================================
    cb_failure_threshold: int = 5
    cb_open_seconds: int = 30

    # ===========================================
    # LOGGING
    # ===========================================
    log_level: str = "INFO"
    log_file: str | None = None
    log_max_bytes: int = 10_000_000
    log_backup_count: int = 5

    @field_validator("payment_provider")
    @classmethod
    def normalize_provider(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("membership_sweep_interval_seconds")
    @classmethod
    def validate_sweep_interval(cls, v: int) -> int:
        """Group membership checks hit getChatMember per user; keep them sparse."""
        if v < 60:
            raise ValueError("membership_sweep_interval_seconds must be at least 60")
        return v

    @property
    def admin_telegram_ids_set(self) -> set[str]:
        """Get admin Telegram IDs as a set."""
        return {i.strip() for i in self.admin_telegram_ids.split(",") if i.strip()}

    @property
    def trusted_payment_ips_set(self) -> set[str]:
        """Get trusted payment gateway IPs as a set."""
        return {ip.strip() for ip in self.trusted_payment_ips.split(",") if ip.strip()}

    @property
    def aux_chat_id(self) -> str:
        return self.telegram_aux_chat_id or self.telegram_group_id

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"  # Игнорировать неизвестные поля из .env


settings = Settings()

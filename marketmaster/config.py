# marketmaster/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, AliasChoices


class Settings(BaseSettings):
    # Настройки pydantic: читаем .env, не падаем на лишние ключи
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
    )

    # База данных
    DATABASE_URL: str = "sqlite:///./marketmaster.db"

    # Безопасность и куки
    SECRET_KEY: str = "dev-secret"
    COOKIE_NAME: str = "marketmaster"
    COOKIE_SECURE: bool = False
    COOKIE_SAMESITE: str = "lax"

    # JWT
    JWT_TTL_SEC: int = 60 * 60 * 24 * 7
    JWT_ALG: str = "HS256"

    # CORS
    ALLOWED_ORIGINS: str = "*"

    LOG_LEVEL: str = "INFO"

    # Пакеты и объявления
    CURRENCY: str = "LKR"
    SILVER_PRICE: int = 2500
    GOLD_PRICE: int = 5000
    SILVER_MAX_ADS: int = 10
    PACKAGE_DAYS: int = 30
    AD_DAYS: int = 30
    DEFAULT_MAX_PRICE: int = 1_000_000
    MAX_AD_IMAGES: int = 5

    # Хостинг картинок (imgbb)
    IMGBB_API_KEY: str | None = Field(
        default=None,
        validation_alias=AliasChoices("IMGBB_API_KEY", "IMAGEBB_API_KEY"),
    )
    IMGBB_UPLOAD_URL: str = "https://api.imgbb.com/1/upload"
    IMAGE_HOST_TIMEOUT_SEC: float = 30.0

    # Локальное хранилище аватарок
    MEDIA_DIR: str = "media"
    MEDIA_URL: str = "/media"

    # Платёжный виджет (PayPal)
    PUBLIC_BASE_URL: str | None = None
    PAYPAL_CLIENT_ID: str | None = None
    PAYPAL_CLIENT_SECRET: str | None = None
    PAYPAL_API_BASE: str = "https://api-m.sandbox.paypal.com"
    WIDGET_POLL_INTERVAL_SEC: float = 1.0
    WIDGET_POLL_MAX_ATTEMPTS: int = 15
    PAYMENT_CALL_TIMEOUT_SEC: float = 20.0


settings = Settings()

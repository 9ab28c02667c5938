import os
import logging
from typing import Optional
from pydantic import BaseModel, Field, field_validator
from dotenv import load_dotenv

from checkout.constants import (
    DEFAULT_DURATION_DAYS,
    INVOICE_EXPIRY_HOURS,
    NOTIFICATION_BATCH_SIZE,
    SWEEP_INTERVAL_SECONDS,
)
from checkout.errors import ConfigError

# Загружаем переменные из .env файла (для локального запуска)
load_dotenv()


class Config(BaseModel):
    """Конфигурация сервиса оплаты с валидацией"""

    database_url: str = Field(..., description="PostgreSQL connection URL")

    # QPay настройки
    qpay_base_url: str = Field(..., description="QPay API base URL")
    qpay_username: str = Field(..., description="QPay client id")
    qpay_password: str = Field(..., description="QPay client secret")
    qpay_invoice_code: str = Field(..., description="QPay invoice code мерчанта")
    qpay_invoice_receiver_code: str = Field(..., description="QPay invoice receiver code")
    qpay_branch_code: str = Field(default="ONLINE", description="QPay sender branch code")
    qpay_callback_secret: Optional[str] = Field(default=None, description="Секрет для callback URL")
    gateway_timeout_seconds: float = Field(default=15.0, gt=0, description="Таймаут HTTP запросов к шлюзу")

    public_base_url: str = Field(..., description="Публичный URL сервиса (для callback)")
    auth_token_secret: str = Field(..., description="Секрет для проверки bearer токенов")
    admin_user_ids: list[str] = Field(default_factory=list, description="ID администраторов (ручная выдача, рассылки)")

    http_host: str = Field(default="0.0.0.0")
    http_port: int = Field(default=8080)

    default_duration_days: int = Field(default=DEFAULT_DURATION_DAYS, gt=0)
    notification_batch_size: int = Field(default=NOTIFICATION_BATCH_SIZE, gt=0)
    sweep_interval_seconds: int = Field(default=SWEEP_INTERVAL_SECONDS, gt=0)
    invoice_expiry_hours: int = Field(default=INVOICE_EXPIRY_HOURS, gt=0)

    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator("qpay_base_url", "public_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Убирает завершающие слеши из базовых URL"""
        return v.rstrip("/")

    @field_validator("admin_user_ids", mode="before")
    @classmethod
    def parse_admin_ids(cls, v):
        """Парсит ADMIN_USER_IDS из строки через запятую в список"""
        if isinstance(v, str):
            return [id.strip() for id in v.split(",") if id.strip()]
        return v

    @classmethod
    def from_env(cls) -> "Config":
        """Создает конфиг из переменных окружения с валидацией"""
        required = {
            "database_url": "DATABASE_URL",
            "qpay_base_url": "QPAY_BASE_URL",
            "qpay_username": "QPAY_USERNAME",
            "qpay_password": "QPAY_PASSWORD",
            "qpay_invoice_code": "QPAY_INVOICE_CODE",
            "qpay_invoice_receiver_code": "QPAY_INVOICE_RECEIVER_CODE",
            "public_base_url": "PUBLIC_BASE_URL",
            "auth_token_secret": "AUTH_TOKEN_SECRET",
        }
        optional = {
            "qpay_branch_code": "QPAY_BRANCH_CODE",
            "qpay_callback_secret": "QPAY_CALLBACK_SECRET",
            "admin_user_ids": "ADMIN_USER_IDS",
            "gateway_timeout_seconds": "GATEWAY_TIMEOUT_SECONDS",
            "http_host": "HTTP_HOST",
            "http_port": "HTTP_PORT",
            "default_duration_days": "DEFAULT_DURATION_DAYS",
            "notification_batch_size": "NOTIFICATION_BATCH_SIZE",
            "sweep_interval_seconds": "SWEEP_INTERVAL_SECONDS",
            "invoice_expiry_hours": "INVOICE_EXPIRY_HOURS",
            "log_level": "LOG_LEVEL",
        }

        values = {}
        missing = []
        for field, env_name in required.items():
            value = os.getenv(env_name)
            if not value:
                missing.append(env_name)
            values[field] = value

        if missing:
            raise ConfigError(f"Не установлены переменные окружения: {', '.join(missing)}")

        for field, env_name in optional.items():
            value = os.getenv(env_name)
            if value:
                values[field] = value

        try:
            return cls(**values)
        except ValueError as e:
            raise ConfigError(f"Некорректная конфигурация: {e}") from e


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Настраивает логирование для приложения"""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    return logging.getLogger("checkout")

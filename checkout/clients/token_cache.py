"""Кэш bearer токена платежного шлюза"""
import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional

from checkout.constants import DEFAULT_TOKEN_TTL_SECONDS, MAX_TOKEN_TTL_SECONDS, TOKEN_SAFETY_MARGIN
from checkout.errors import GatewayAuthError

logger = logging.getLogger(__name__)

# Возвращает (access_token, expires_in)
Authenticator = Callable[[], Awaitable[tuple[str, Optional[float]]]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def clamp_ttl(expires_in: Optional[float]) -> float:
    """TTL от шлюза, если он разумный, иначе значение по умолчанию"""
    if isinstance(expires_in, bool) or not isinstance(expires_in, (int, float)):
        return DEFAULT_TOKEN_TTL_SECONDS
    if 0 < expires_in < MAX_TOKEN_TTL_SECONDS:
        return float(expires_in)
    return DEFAULT_TOKEN_TTL_SECONDS


class GatewayAuthCache:
    """
    Один токен на процесс с single-flight обновлением

    Пока один вызов обновляет токен, остальные ждут на замке и
    после пробуждения берут уже обновленный токен из кэша.
    """

    def __init__(
        self,
        authenticate: Authenticator,
        *,
        clock: Callable[[], datetime] = _utcnow,
        safety_margin: timedelta = TOKEN_SAFETY_MARGIN,
    ):
        self._authenticate = authenticate
        self._clock = clock
        self._safety_margin = safety_margin
        self._lock = asyncio.Lock()
        self._token: Optional[str] = None
        self._expires_at: Optional[datetime] = None

    def _cached(self) -> Optional[str]:
        if self._token and self._expires_at and self._expires_at - self._clock() > self._safety_margin:
            return self._token
        return None

    async def get_token(self) -> str:
        """Возвращает действующий токен, при необходимости обновляя его"""
        token = self._cached()
        if token:
            return token

        async with self._lock:
            token = self._cached()
            if token:
                return token

            try:
                access_token, expires_in = await self._authenticate()
            except GatewayAuthError:
                raise
            except Exception as e:
                raise GatewayAuthError(f"Ошибка авторизации в шлюзе: {e}") from e

            if not access_token:
                raise GatewayAuthError("Шлюз не вернул access_token")

            ttl = clamp_ttl(expires_in)
            self._token = access_token
            self._expires_at = self._clock() + timedelta(seconds=ttl)
            logger.info(f"🔑 Получен новый токен шлюза (TTL {int(ttl)} c)")
            return access_token

    def invalidate(self) -> None:
        """Сбрасывает токен (например, после 401 от шлюза)"""
        self._token = None
        self._expires_at = None

"""Проверка bearer токенов вызывающего пользователя"""
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

from checkout.errors import AuthenticationError

JWT_ALGORITHM = "HS256"


def extract_bearer_token(header: Optional[str]) -> Optional[str]:
    """Достает токен из заголовка Authorization: Bearer <token>"""
    if not header:
        return None
    scheme, _, token = header.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


class IdentityVerifier:
    """Сопоставляет токен с ID пользователя (claim sub)"""

    def __init__(self, secret: str, algorithm: str = JWT_ALGORITHM):
        self.secret = secret
        self.algorithm = algorithm

    def verify(self, token: Optional[str]) -> str:
        if not token:
            raise AuthenticationError("Требуется авторизация")
        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except JWTError as e:
            raise AuthenticationError("Недействительный токен") from e

        subject = payload.get("sub")
        if subject is None or not str(subject).strip():
            raise AuthenticationError("Недействительный токен")
        return str(subject)

    def issue(self, subject: str, expires_delta: timedelta = timedelta(hours=1)) -> str:
        """Выпускает токен (для тестов и служебных клиентов)"""
        payload = {"sub": subject, "exp": datetime.now(timezone.utc) + expires_delta}
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

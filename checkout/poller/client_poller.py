"""
Клиентский цикл ожидания оплаты

Создает счет, затем периодически спрашивает статус, пока счет не оплачен,
не истек бюджет времени или не накопилось слишком много ошибок подряд.
"""
import asyncio
import logging
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from checkout.constants import (
    POLL_INTERVAL_SECONDS,
    POLL_MAX_CONSECUTIVE_ERRORS,
    POLL_TIMEOUT_SECONDS,
)

logger = logging.getLogger(__name__)

CreateFn = Callable[[str, int, str], Awaitable[dict[str, Any]]]
CheckFn = Callable[[str], Awaitable[dict[str, Any]]]


class PollerState(str, Enum):
    IDLE = "IDLE"
    CREATING = "CREATING"
    AWAITING_PAYMENT = "AWAITING_PAYMENT"
    PAID = "PAID"
    TIMED_OUT = "TIMED_OUT"
    ERROR = "ERROR"
    CANCELLED = "CANCELLED"

    @property
    def is_final(self) -> bool:
        return self in (PollerState.PAID, PollerState.TIMED_OUT, PollerState.ERROR, PollerState.CANCELLED)


class ClientPoller:
    """
    Конечный автомат ожидания оплаты с одной отменяемой задачей

    IDLE -> CREATING -> AWAITING_PAYMENT -> PAID | TIMED_OUT | ERROR,
    CANCELLED из любого нефинального состояния.
    """

    def __init__(
        self,
        create: CreateFn,
        check: CheckFn,
        *,
        interval: float = POLL_INTERVAL_SECONDS,
        timeout: float = POLL_TIMEOUT_SECONDS,
        max_consecutive_errors: int = POLL_MAX_CONSECUTIVE_ERRORS,
        on_state: Optional[Callable[["PollerState"], None]] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._create = create
        self._check = check
        self.interval = interval
        self.timeout = timeout
        self.max_consecutive_errors = max_consecutive_errors
        self._on_state = on_state
        self._clock = clock
        self._sleep = sleep

        self.state = PollerState.IDLE
        self.invoice: Optional[dict[str, Any]] = None
        self.last_error: Optional[BaseException] = None
        self._task: Optional[asyncio.Task] = None
        self._cancel_requested = False

    @property
    def invoice_id(self) -> Optional[str]:
        return self.invoice.get("invoiceId") if self.invoice else None

    def _set_state(self, state: PollerState) -> None:
        if state is self.state:
            return
        logger.debug(f"Поллер: {self.state.value} -> {state.value}")
        self.state = state
        if self._on_state:
            try:
                self._on_state(state)
            except Exception as e:
                logger.error(f"Ошибка в обработчике состояния поллера: {e}")

    async def run(self, product_id: str, amount: int, description: str = "") -> PollerState:
        """Запускает покупку и ждет финального состояния"""
        if self.state is not PollerState.IDLE:
            raise RuntimeError(f"Поллер уже запущен (state={self.state.value})")

        self._task = asyncio.create_task(self._run(product_id, amount, description))
        try:
            return await self._task
        except asyncio.CancelledError:
            self._set_state(PollerState.CANCELLED)
            if self._cancel_requested:
                return self.state
            # Отменили ожидающую задачу, отмену пробрасываем дальше
            raise
        finally:
            self._task = None

    def cancel(self) -> None:
        """Останавливает ожидание (закрытие окна оплаты)"""
        if self.state.is_final:
            return
        self._cancel_requested = True
        if self._task and not self._task.done():
            self._task.cancel()
        self._set_state(PollerState.CANCELLED)

    async def _run(self, product_id: str, amount: int, description: str) -> PollerState:
        self._set_state(PollerState.CREATING)
        try:
            self.invoice = await self._create(product_id, amount, description)
        except Exception as e:
            logger.error(f"Не удалось создать счет: {e}")
            self.last_error = e
            self._set_state(PollerState.ERROR)
            return self.state

        invoice_id = self.invoice_id
        if not invoice_id:
            logger.error("Ответ на создание счета без invoiceId")
            self._set_state(PollerState.ERROR)
            return self.state

        self._set_state(PollerState.AWAITING_PAYMENT)
        deadline = self._clock() + self.timeout
        errors = 0

        while True:
            await self._sleep(self.interval)

            if self._clock() >= deadline:
                logger.info(f"⏱️ Оплата счета {invoice_id} не подтверждена за {self.timeout} с")
                self._set_state(PollerState.TIMED_OUT)
                return self.state

            try:
                result = await self._check(invoice_id)
            except Exception as e:
                errors += 1
                self.last_error = e
                logger.warning(f"Ошибка проверки счета {invoice_id} ({errors}/{self.max_consecutive_errors}): {e}")
                if errors >= self.max_consecutive_errors:
                    self._set_state(PollerState.ERROR)
                    return self.state
                continue

            errors = 0
            if result.get("paid"):
                logger.info(f"✅ Счет {invoice_id} оплачен")
                self._set_state(PollerState.PAID)
                return self.state

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from checkout.constants import INVOICE_EXPIRY_HOURS, SWEEP_INTERVAL_SECONDS, SWEEP_LOOKBACK
from checkout.db.repositories.invoices import InvoiceRepository
from checkout.services.payments import PaymentService

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def sweep_pending_invoices(
    invoices: InvoiceRepository,
    payments: PaymentService,
    *,
    expiry_hours: int = INVOICE_EXPIRY_HOURS,
    lookback: timedelta = SWEEP_LOOKBACK,
    now: Optional[datetime] = None,
) -> dict[str, int]:
    """
    Один проход сверки PENDING счетов со шлюзом

    Свежие счета перепроверяются (оплата могла пройти после закрытия окна
    клиентом). Счета старше expiry_hours проверяются в последний раз и,
    если не оплачены, переводятся в EXPIRED.

    Returns:
        Счетчики: checked, paid, expired, errors
    """
    now = now or _utcnow()
    expiry_cutoff = now - timedelta(hours=expiry_hours)
    stats = {"checked": 0, "paid": 0, "expired": 0, "errors": 0}

    recent = await invoices.list_pending(created_after=now - lookback)
    stale = await invoices.list_pending(created_before=expiry_cutoff)

    for invoice in recent:
        if invoice["created_at"] < expiry_cutoff:
            continue
        try:
            result = await payments.check_paid(invoice["id"])
        except Exception as e:
            stats["errors"] += 1
            logger.error(f"Ошибка сверки счета {invoice['id']}: {e}")
            continue
        stats["checked"] += 1
        if result.paid:
            stats["paid"] += 1

    for invoice in stale:
        try:
            result = await payments.check_paid(invoice["id"])
        except Exception as e:
            # Без подтверждения от шлюза счет не закрываем
            stats["errors"] += 1
            logger.error(f"Ошибка финальной проверки счета {invoice['id']}: {e}")
            continue
        stats["checked"] += 1
        if result.paid:
            stats["paid"] += 1
            continue
        if await invoices.expire_if_pending(invoice["id"]):
            stats["expired"] += 1

    return stats


async def pending_invoice_sweeper(
    invoices: InvoiceRepository,
    payments: PaymentService,
    *,
    interval_seconds: int = SWEEP_INTERVAL_SECONDS,
    expiry_hours: int = INVOICE_EXPIRY_HOURS,
    sleep: Callable = asyncio.sleep,
):
    """Фоновая задача периодической сверки неоплаченных счетов"""
    logger.info("🔄 Запущена фоновая задача сверки счетов")

    try:
        while True:
            try:
                await sleep(interval_seconds)

                stats = await sweep_pending_invoices(invoices, payments, expiry_hours=expiry_hours)
                if stats["paid"] or stats["expired"] or stats["errors"]:
                    logger.info(
                        f"🧾 Сверка счетов: проверено {stats['checked']}, оплачено {stats['paid']}, "
                        f"истекло {stats['expired']}, ошибок {stats['errors']}"
                    )

            except asyncio.CancelledError:
                logger.info("🛑 Задача сверки счетов остановлена")
                raise

            except Exception as e:
                logger.error(f"Ошибка в задаче сверки счетов: {e}")

    except asyncio.CancelledError:
        logger.info("✅ Задача сверки завершена")
        raise

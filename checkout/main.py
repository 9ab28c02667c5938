import asyncio
import logging
import sys

from aiohttp import web

from checkout.background.sweeper import pending_invoice_sweeper
from checkout.clients.qpay_client import QPayClient
from checkout.config import Config, setup_logging
from checkout.db.pool import close_pool, init_pool, init_schema
from checkout.db.repositories.catalog import CatalogRepository
from checkout.db.repositories.entitlements import EntitlementRepository
from checkout.db.repositories.invoices import InvoiceRepository
from checkout.db.repositories.notifications import NotificationRepository
from checkout.db.repositories.users import UserRepository
from checkout.errors import ConfigError
from checkout.services.entitlements import EntitlementGranter
from checkout.services.identity import IdentityVerifier
from checkout.services.invoices import InvoiceService
from checkout.services.notifications import NotificationService
from checkout.services.payments import PaymentService
from checkout.services.publish import PublishNotifier
from checkout.web.server import create_app


async def main():
    """Главная функция запуска checkout сервиса"""
    try:
        config = Config.from_env()
    except ConfigError as e:
        setup_logging()
        logging.getLogger("checkout").critical(f"❌ {e.message}")
        sys.exit(1)

    logger = setup_logging(config.log_level)
    logger.info("🚀 Запуск checkout сервиса...")

    # Инициализация базы данных
    pool = await init_pool(config.database_url)
    await init_schema(pool)

    invoices = InvoiceRepository(pool)
    gateway = QPayClient(config)
    notifications = NotificationService(NotificationRepository(pool), config.notification_batch_size)
    catalog = CatalogRepository(pool)
    users = UserRepository(pool)
    granter = EntitlementGranter(
        EntitlementRepository(pool),
        catalog,
        notifications,
        default_duration_days=config.default_duration_days,
    )
    payments = PaymentService(invoices, gateway, granter)

    app = create_app(
        config=config,
        identity=IdentityVerifier(config.auth_token_secret),
        invoice_service=InvoiceService(
            invoices,
            gateway,
            public_base_url=config.public_base_url,
            callback_secret=config.qpay_callback_secret,
        ),
        payment_service=payments,
        granter=granter,
        notifications=notifications,
        publisher=PublishNotifier(catalog, users, notifications),
        users=users,
    )

    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, config.http_host, config.http_port)
    await site.start()

    # Фоновая сверка неоплаченных счетов
    sweeper_task = asyncio.create_task(
        pending_invoice_sweeper(
            invoices,
            payments,
            interval_seconds=config.sweep_interval_seconds,
            expiry_hours=config.invoice_expiry_hours,
        )
    )

    logger.info(f"✅ Сервис слушает {config.http_host}:{config.http_port}")
    if config.admin_user_ids:
        logger.info(f"👤 Admin IDs: {', '.join(config.admin_user_ids)}")

    try:
        await asyncio.Event().wait()
    finally:
        # Очистка ресурсов
        sweeper_task.cancel()
        try:
            await sweeper_task
        except asyncio.CancelledError:
            pass
        await runner.cleanup()
        await gateway.close()
        await close_pool(pool)
        logger.info("👋 Сервис остановлен")


if __name__ == "__main__":
    asyncio.run(main())

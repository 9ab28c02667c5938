import logging

from checkout.db.repositories.catalog import CatalogRepository
from checkout.db.repositories.users import UserRepository
from checkout.errors import NotFoundError
from checkout.models.notification import FanoutResult, NotificationPayload
from checkout.services.notifications import NotificationService

logger = logging.getLogger(__name__)


class PublishNotifier:
    """Рассылка всем пользователям о публикации нового курса"""

    def __init__(self, catalog: CatalogRepository, users: UserRepository, notifications: NotificationService):
        self.catalog = catalog
        self.users = users
        self.notifications = notifications

    async def notify_product_published(self, product_id: str) -> FanoutResult:
        """
        Уведомляет всех пользователей о новом курсе (однократно)

        Отметка ставится и при частичной доставке, чтобы повторная
        публикация не рассылала уведомления заново.

        Returns:
            FanoutResult (пустой, если рассылка уже выполнялась)
        """
        product = await self.catalog.get_product(product_id)
        if not product:
            raise NotFoundError("Курс не найден")

        if product["published_notified_at"] is not None:
            logger.info(f"Рассылка о курсе {product_id} уже выполнена")
            return FanoutResult()

        title = product["title"] or "Шинэ сургалт"
        payload = NotificationPayload(
            title="Шинэ сургалт нэмэгдлээ",
            body=f"\"{title}\" сургалт нийтлэгдлээ. Одоо үзэх боломжтой.",
            type="course",
            link=f"/course/{product_id}",
        )

        user_ids = await self.users.list_user_ids()
        result = await self.notifications.notify_all(user_ids, payload)

        await self.catalog.mark_published_notified(product_id)
        logger.info(f"📢 Рассылка о курсе {product_id}: получателей {result.total}")
        return result

"""HTTP сервер checkout API (aiohttp)"""
import hmac
import json
import logging
from typing import Any, Optional, Type, TypeVar

from aiohttp import web
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from checkout.config import Config
from checkout.db.repositories.users import UserRepository
from checkout.errors import CheckoutError, OwnershipError, ValidationError
from checkout.models.entitlement import AdminGrantRequest
from checkout.models.invoice import CheckInvoiceRequest, CreateInvoiceRequest
from checkout.models.notification import AdminNotifyRequest, MarkReadRequest, NotificationRecord
from checkout.services.entitlements import EntitlementGranter
from checkout.services.identity import IdentityVerifier, extract_bearer_token
from checkout.services.invoices import InvoiceService
from checkout.services.notifications import NotificationService
from checkout.services.payments import PaymentService
from checkout.services.publish import PublishNotifier

logger = logging.getLogger(__name__)

GATEWAY_UNAVAILABLE_MESSAGE = "Платежный сервис временно недоступен, попробуйте еще раз"

ModelT = TypeVar("ModelT", bound=BaseModel)


@web.middleware
async def error_middleware(request: web.Request, handler) -> web.StreamResponse:
    """Переводит исключения в JSON ответ {ok, error, message}"""
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except CheckoutError as e:
        if e.retryable:
            # Сырые ответы шлюза клиенту не отдаем
            logger.error(f"Ошибка шлюза на {request.method} {request.path}: {e.code}: {e.message}")
            payload = {"ok": False, "error": e.code, "message": GATEWAY_UNAVAILABLE_MESSAGE}
        else:
            payload = e.to_payload()
        return web.json_response(payload, status=e.status_code)
    except Exception:
        logger.exception(f"Необработанная ошибка на {request.method} {request.path}")
        return web.json_response(
            {"ok": False, "error": "INTERNAL_ERROR", "message": "Внутренняя ошибка сервера"},
            status=500,
        )


async def _authenticate(request: web.Request) -> str:
    """
    ID вызывающего пользователя по bearer токену

    Пользователь регистрируется при первом обращении, чтобы попасть
    в рассылки о новых курсах.
    """
    identity: IdentityVerifier = request.app['identity']
    token = extract_bearer_token(request.headers.get('Authorization'))
    user_id = identity.verify(token)

    users: UserRepository = request.app['users']
    if await users.ensure_user(user_id):
        logger.info(f"👤 Новый пользователь: {user_id}")
    return user_id


async def _require_admin(request: web.Request) -> str:
    user_id = await _authenticate(request)
    config: Config = request.app['config']
    if user_id not in config.admin_user_ids:
        raise OwnershipError("Действие доступно только администраторам")
    return user_id


async def _read_model(request: web.Request, model: Type[ModelT]) -> ModelT:
    """Разбирает JSON тело запроса в pydantic модель"""
    try:
        data = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError("Некорректный JSON", code="INVALID_BODY")
    if not isinstance(data, dict):
        raise ValidationError("Ожидается JSON объект", code="INVALID_BODY")
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise ValidationError(f"Некорректные поля: {fields}", code="INVALID_BODY") from e


def _isoformat(value: Any) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _notification_to_json(notification: NotificationRecord) -> dict[str, Any]:
    return {
        "id": notification["id"],
        "title": notification["title"],
        "body": notification["body"],
        "type": notification["type"],
        "link": notification["link"],
        "read": notification["read"],
        "createdAt": _isoformat(notification["created_at"]),
    }


async def handle_create(request: web.Request) -> web.Response:
    """POST /checkout/create"""
    owner_id = await _authenticate(request)
    body = await _read_model(request, CreateInvoiceRequest)

    service: InvoiceService = request.app['invoice_service']
    view = await service.create_invoice(owner_id, body.product_id, body.amount, body.description)
    return web.json_response(view.model_dump(by_alias=True))


async def handle_check(request: web.Request) -> web.Response:
    """POST /checkout/check"""
    owner_id = await _authenticate(request)
    body = await _read_model(request, CheckInvoiceRequest)

    service: PaymentService = request.app['payment_service']
    result = await service.check_paid(body.invoice_id, owner_id)
    return web.json_response(result.model_dump(mode="json"))


async def handle_callback(request: web.Request) -> web.Response:
    """
    Callback от шлюза о смене статуса счета

    Шлюзу всегда отвечаем 200, иначе он будет повторять запрос.
    Доступ выдается только после проверки оплаты у шлюза.
    """
    config: Config = request.app['config']
    data = await request.post() if request.method == 'POST' else request.query
    reference = request.query.get('ref') or data.get('ref', '')
    secret = request.query.get('s', '')

    if config.qpay_callback_secret and not hmac.compare_digest(secret.encode(), config.qpay_callback_secret.encode()):
        logger.error(f"Неверный секрет в callback: ref={reference}")
        return web.json_response({"ok": False})

    logger.info(f"Получен callback от шлюза: ref={reference}")
    service: PaymentService = request.app['payment_service']
    try:
        result = await service.handle_gateway_callback(reference)
    except Exception as e:
        logger.error(f"Ошибка обработки callback (ref={reference}): {e}")
        return web.json_response({"ok": False})

    return web.json_response({"ok": result is not None})


async def handle_list_notifications(request: web.Request) -> web.Response:
    """GET /notifications"""
    user_id = await _authenticate(request)
    service: NotificationService = request.app['notifications']
    notifications = await service.list_for_user(user_id)
    return web.json_response({"notifications": [_notification_to_json(n) for n in notifications]})


async def handle_mark_read(request: web.Request) -> web.Response:
    """POST /notifications/read"""
    user_id = await _authenticate(request)
    body = await _read_model(request, MarkReadRequest)
    service: NotificationService = request.app['notifications']
    updated = await service.mark_read(user_id, body.ids)
    return web.json_response({"ok": True, "updated": updated})


async def handle_unread_count(request: web.Request) -> web.Response:
    """GET /notifications/unread-count"""
    user_id = await _authenticate(request)
    service: NotificationService = request.app['notifications']
    return web.json_response({"count": await service.unread_count(user_id)})


async def handle_entitlement(request: web.Request) -> web.Response:
    """GET /entitlements/{product_id}"""
    user_id = await _authenticate(request)
    granter: EntitlementGranter = request.app['granter']
    entitlement = await granter.get_active_entitlement(user_id, request.match_info['product_id'])
    return web.json_response({
        "hasAccess": entitlement is not None,
        "expiresAt": _isoformat(entitlement["expires_at"]) if entitlement else None,
    })


async def handle_admin_grant(request: web.Request) -> web.Response:
    """POST /admin/grant"""
    admin_id = await _require_admin(request)
    body = await _read_model(request, AdminGrantRequest)
    granter: EntitlementGranter = request.app['granter']
    entitlement = await granter.grant_manual(
        body.user_id,
        body.product_id,
        duration_days=body.duration_days,
        duration_label=body.duration_label,
    )
    logger.info(f"👤 Админ {admin_id} выдал доступ {body.user_id} к {body.product_id}")
    return web.json_response({
        "ok": True,
        "expiresAt": _isoformat(entitlement["expires_at"]),
        "durationDays": entitlement["duration_days"],
    })


async def handle_publish_notify(request: web.Request) -> web.Response:
    """POST /admin/products/{product_id}/publish-notify"""
    await _require_admin(request)
    publisher: PublishNotifier = request.app['publisher']
    result = await publisher.notify_product_published(request.match_info['product_id'])
    return web.json_response({
        "notified": result.total > 0,
        "succeeded": len(result.succeeded),
        "failed": len(result.failed),
    })


async def handle_admin_notify(request: web.Request) -> web.Response:
    """POST /admin/users/{user_id}/notify"""
    admin_id = await _require_admin(request)
    body = await _read_model(request, AdminNotifyRequest)
    payload = body.to_payload()
    if payload is None:
        raise ValidationError("Заголовок и текст обязательны", code="MISSING_FIELDS")

    user_id = request.match_info['user_id']
    service: NotificationService = request.app['notifications']
    await service.notify_one(user_id, payload)
    logger.info(f"📨 Админ {admin_id} отправил уведомление пользователю {user_id}")
    return web.json_response({"ok": True})


async def handle_health(request: web.Request) -> web.Response:
    return web.json_response({"status": "ok"})


def create_app(
    *,
    config: Config,
    identity: IdentityVerifier,
    invoice_service: InvoiceService,
    payment_service: PaymentService,
    granter: EntitlementGranter,
    notifications: NotificationService,
    publisher: PublishNotifier,
    users: UserRepository,
) -> web.Application:
    """Создает aiohttp приложение checkout API"""
    app = web.Application(middlewares=[error_middleware])
    app['config'] = config
    app['identity'] = identity
    app['invoice_service'] = invoice_service
    app['payment_service'] = payment_service
    app['granter'] = granter
    app['notifications'] = notifications
    app['publisher'] = publisher
    app['users'] = users

    app.router.add_post('/checkout/create', handle_create)
    app.router.add_post('/checkout/check', handle_check)
    app.router.add_route('GET', '/checkout/callback', handle_callback)
    app.router.add_route('POST', '/checkout/callback', handle_callback)
    app.router.add_get('/notifications', handle_list_notifications)
    app.router.add_post('/notifications/read', handle_mark_read)
    app.router.add_get('/notifications/unread-count', handle_unread_count)
    app.router.add_get('/entitlements/{product_id}', handle_entitlement)
    app.router.add_post('/admin/grant', handle_admin_grant)
    app.router.add_post('/admin/products/{product_id}/publish-notify', handle_publish_notify)
    app.router.add_post('/admin/users/{user_id}/notify', handle_admin_notify)
    app.router.add_get('/health', handle_health)

    return app

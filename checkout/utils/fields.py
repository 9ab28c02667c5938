"""Разбор ответов шлюза с непостоянными именами полей"""
from typing import Any, Iterable, Mapping, Optional

from checkout.constants import QPAY_SHORT_URL_PREFIXES

# Кандидаты имен для каждого логического поля, в порядке приоритета
INVOICE_ID_KEYS = ("invoice_id", "invoiceId", "id")
QR_TEXT_KEYS = ("qr_text", "qrText", "qr_string", "qrString")
QR_IMAGE_KEYS = ("qr_image", "qrImage")
SHORT_URL_KEYS = ("qPay_shortUrl", "short_url", "shortUrl", "qpay_short_url", "qpayShortUrl")
DEEP_LINK_LIST_KEYS = ("urls", "payment_urls", "deeplinks")

STATUS_KEYS = ("payment_status", "status", "invoice_status")
PAID_FLAG_KEYS = ("paid", "is_paid")
PAID_AMOUNT_KEYS = ("paid_amount", "paidAmount")
ROW_LIST_KEYS = ("rows", "payments")
ROW_STATUS_KEYS = ("payment_status", "status")


def pick_string(data: Mapping[str, Any], keys: Iterable[str]) -> Optional[str]:
    """Первое непустое строковое значение по списку ключей"""
    for key in keys:
        value = data.get(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            value = str(value)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def pick_list(data: Mapping[str, Any], keys: Iterable[str]) -> list[Any]:
    """Первый непустой список по списку ключей"""
    for key in keys:
        value = data.get(key)
        if isinstance(value, list) and value:
            return value
    return []


def pick_number(data: Mapping[str, Any], keys: Iterable[str]) -> float:
    """Первое числовое значение (строки с числом тоже принимаются)"""
    for key in keys:
        value = data.get(key)
        if isinstance(value, bool) or value is None:
            continue
        try:
            return float(value)
        except (TypeError, ValueError):
            continue
    return 0.0


def normalize_deep_links(raw_links: list[Any]) -> list[dict[str, Any]]:
    """Оставляет только элементы с непустой ссылкой"""
    links = []
    for item in raw_links:
        if not isinstance(item, Mapping):
            continue
        link = item.get("link")
        if isinstance(link, str) and link.strip():
            links.append({
                "name": item.get("name"),
                "description": item.get("description"),
                "logo": item.get("logo"),
                "link": link.strip(),
            })
    return links


def extract_short_url(data: Mapping[str, Any], deep_links: list[dict[str, Any]]) -> Optional[str]:
    """
    Короткая ссылка на оплату

    Сначала явные поля, затем ссылка на хост коротких ссылок шлюза
    из списка deeplink'ов, затем первая ссылка из списка.
    """
    explicit = pick_string(data, SHORT_URL_KEYS)
    if explicit:
        return explicit

    for item in deep_links:
        if item["link"].lower().startswith(QPAY_SHORT_URL_PREFIXES):
            return item["link"]

    if deep_links:
        return deep_links[0]["link"]
    return None


def _is_paid_status(value: Any) -> bool:
    return isinstance(value, str) and value.strip().upper() == "PAID"


def is_paid_response(data: Mapping[str, Any]) -> bool:
    """
    Решает, оплачен ли счет, по любому из признаков:
    статус-строка, булев флаг, ненулевая оплаченная сумма,
    хотя бы одна строка платежа со статусом PAID
    """
    if any(_is_paid_status(data.get(key)) for key in STATUS_KEYS):
        return True

    if any(data.get(key) is True for key in PAID_FLAG_KEYS):
        return True

    if pick_number(data, PAID_AMOUNT_KEYS) > 0:
        return True

    for key in ROW_LIST_KEYS:
        rows = data.get(key)
        if not isinstance(rows, list):
            continue
        for row in rows:
            if isinstance(row, Mapping) and any(_is_paid_status(row.get(k)) for k in ROW_STATUS_KEYS):
                return True

    return False


def paid_amount_from_response(data: Mapping[str, Any]) -> int:
    """Оплаченная сумма: явное поле или сумма оплаченных строк"""
    amount = pick_number(data, PAID_AMOUNT_KEYS)
    if amount > 0:
        return int(amount)

    total = 0.0
    for key in ROW_LIST_KEYS:
        rows = data.get(key)
        if not isinstance(rows, list):
            continue
        for row in rows:
            if isinstance(row, Mapping) and any(_is_paid_status(row.get(k)) for k in ROW_STATUS_KEYS):
                total += pick_number(row, ("payment_amount", "amount"))
    return int(total)

import re
from typing import Any, Optional

from checkout.constants import DAYS_PER_MONTH, DAYS_PER_YEAR, DEFAULT_DURATION_DAYS
from checkout.models.entitlement import DurationSpec, ProductDurationConfig

_DAY_RE = re.compile(r"(\d+)\s*(хоног|өдөр|days?)")
_MONTH_RE = re.compile(r"(\d+)\s*(сар|months?)")
_YEAR_RE = re.compile(r"(\d+)\s*(жил|years?)")
_BARE_NUMBER_RE = re.compile(r"^\d+$")


def parse_duration_days(label: Optional[str]) -> Optional[int]:
    """Разбирает срок вида "30 хоног", "3 сар", "1 жил", "90" в дни"""
    text = str(label or "").strip().lower()
    if not text:
        return None

    match = _DAY_RE.search(text)
    if match:
        return int(match.group(1))

    match = _MONTH_RE.search(text)
    if match:
        return int(match.group(1)) * DAYS_PER_MONTH

    match = _YEAR_RE.search(text)
    if match:
        return int(match.group(1)) * DAYS_PER_YEAR

    if _BARE_NUMBER_RE.match(text):
        return int(text)

    return None


def _positive_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def resolve_duration(
    product: Optional[ProductDurationConfig],
    default_days: int = DEFAULT_DURATION_DAYS,
) -> DurationSpec:
    """
    Срок доступа продукта

    Явное число дней > разобранная метка > разобранное поле duration >
    значение по умолчанию. Метка берется из duration_label, затем из duration.
    """
    product = product or {}
    label = str(product.get("duration_label") or "").strip()
    duration_text = str(product.get("duration") or "").strip()

    days = _positive_int(product.get("duration_days"))
    if days is None:
        parsed = parse_duration_days(label) or parse_duration_days(duration_text)
        days = parsed if parsed else default_days

    return DurationSpec(days=days, label=label or duration_text or f"{days} хоног")

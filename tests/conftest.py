"""Общие in-memory фейки репозиториев и шлюза для тестов"""
from __future__ import annotations

import asyncio
import itertools
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest

from checkout.config import Config
from checkout.errors import GatewayInvoiceError
from checkout.models.entitlement import EntitlementRecord
from checkout.models.gateway import GatewayInvoice, GatewayPaymentStatus
from checkout.models.invoice import PAYABLE_STATUSES
from checkout.models.notification import NotificationPayload
from checkout.services.entitlements import EntitlementGranter
from checkout.services.invoices import InvoiceService
from checkout.services.notifications import NotificationService
from checkout.services.payments import PaymentService
from checkout.services.publish import PublishNotifier

NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


class InMemoryInvoiceRepository:
    def __init__(self) -> None:
        self.rows: Dict[str, dict] = {}
        self.touched: List[str] = []
        self._ids = itertools.count(1)

    def add(self, **fields: Any) -> dict:
        invoice_id = fields.pop("id", None) or f"inv-{next(self._ids)}"
        record = {
            "id": invoice_id,
            "owner_id": "user-1",
            "product_id": "course-1",
            "amount": 50000,
            "description": "",
            "gateway_invoice_id": f"gw-{invoice_id}",
            "sender_invoice_no": f"ref-{invoice_id}",
            "status": "PENDING",
            "paid_amount": None,
            "qr_text": None,
            "qr_image": "data:image/png;base64,AAAA",
            "short_url": None,
            "deep_links": [],
            "created_at": NOW,
            "updated_at": NOW,
            "paid_at": None,
            "last_checked_at": None,
        }
        record.update(fields)
        self.rows[invoice_id] = record
        return dict(record)

    async def create_invoice(self, **fields: Any) -> dict:
        return self.add(**fields)

    async def get_invoice(self, invoice_id: str) -> Optional[dict]:
        record = self.rows.get(invoice_id)
        return dict(record) if record else None

    async def find_reusable_pending(self, owner_id: str, product_id: str, amount: int) -> Optional[dict]:
        candidates = [
            r for r in self.rows.values()
            if r["owner_id"] == owner_id and r["product_id"] == product_id and r["status"] == "PENDING"
        ]
        if not candidates:
            return None
        latest = max(candidates, key=lambda r: r["created_at"])
        if latest["amount"] != amount or not (latest["qr_image"] or latest["short_url"] or latest["deep_links"]):
            return None
        return dict(latest)

    async def cancel_other_pending(self, owner_id: str, product_id: str, keep_id: str) -> int:
        count = 0
        for record in self.rows.values():
            if (
                record["owner_id"] == owner_id
                and record["product_id"] == product_id
                and record["status"] == "PENDING"
                and record["id"] != keep_id
            ):
                record["status"] = "CANCELLED"
                count += 1
        return count

    async def touch_checked(self, invoice_id: str) -> None:
        self.touched.append(invoice_id)

    async def list_pending(
        self,
        *,
        created_after: Optional[datetime] = None,
        created_before: Optional[datetime] = None,
        limit: int = 500,
    ) -> List[dict]:
        rows = [
            dict(r) for r in sorted(self.rows.values(), key=lambda r: r["created_at"])
            if r["status"] == "PENDING"
            and (created_after is None or r["created_at"] >= created_after)
            and (created_before is None or r["created_at"] < created_before)
        ]
        return rows[:limit]

    async def expire_if_pending(self, invoice_id: str) -> bool:
        record = self.rows.get(invoice_id)
        if not record or record["status"] != "PENDING":
            return False
        record["status"] = "EXPIRED"
        return True

    async def get_by_sender_invoice_no(self, sender_invoice_no: str) -> Optional[dict]:
        for record in self.rows.values():
            if record["sender_invoice_no"] == sender_invoice_no:
                return dict(record)
        return None


class InMemoryEntitlementRepository:
    def __init__(self, invoices: InMemoryInvoiceRepository) -> None:
        self.invoices = invoices
        self.rows: Dict[tuple, EntitlementRecord] = {}
        self.writes = 0

    async def grant_for_invoice(
        self,
        invoice_id: str,
        paid_amount: Optional[int],
        paid_at: datetime,
        entitlement: EntitlementRecord,
    ) -> bool:
        invoice = self.invoices.rows[invoice_id]
        if invoice["status"] not in PAYABLE_STATUSES:
            return False
        invoice.update(status="PAID", paid_at=paid_at, paid_amount=paid_amount)
        self.rows[(entitlement["user_id"], entitlement["product_id"])] = dict(entitlement)
        self.writes += 1
        return True

    async def upsert(self, entitlement: EntitlementRecord) -> None:
        self.rows[(entitlement["user_id"], entitlement["product_id"])] = dict(entitlement)
        self.writes += 1

    async def get(self, user_id: str, product_id: str) -> Optional[EntitlementRecord]:
        record = self.rows.get((user_id, product_id))
        return dict(record) if record else None


class InMemoryNotificationRepository:
    def __init__(self) -> None:
        self.rows: List[dict] = []
        self.fail_for: set[str] = set()
        self.in_flight = 0
        self.waves: List[List[str]] = []
        self._ids = itertools.count(1)

    async def create(self, recipient_id: str, payload: NotificationPayload) -> dict:
        if self.in_flight == 0:
            self.waves.append([])
        self.in_flight += 1
        self.waves[-1].append(recipient_id)
        try:
            await asyncio.sleep(0)
            if recipient_id in self.fail_for:
                raise RuntimeError(f"write failed for {recipient_id}")
            record = {
                "id": next(self._ids),
                "recipient_id": recipient_id,
                "title": payload.title,
                "body": payload.body,
                "type": payload.type,
                "link": payload.link,
                "read": False,
                "created_at": NOW,
                "read_at": None,
            }
            self.rows.append(record)
            return dict(record)
        finally:
            self.in_flight -= 1

    def for_user(self, recipient_id: str) -> List[dict]:
        return [r for r in self.rows if r["recipient_id"] == recipient_id]

    async def list_for_user(self, recipient_id: str, limit: int = 200) -> List[dict]:
        return list(reversed(self.for_user(recipient_id)))[:limit]

    async def mark_read(self, recipient_id: str, ids: List[int]) -> List[int]:
        updated = []
        for record in self.rows:
            if record["recipient_id"] == recipient_id and record["id"] in ids and not record["read"]:
                record["read"] = True
                updated.append(record["id"])
        return updated

    async def unread_count(self, recipient_id: str) -> int:
        return sum(1 for r in self.for_user(recipient_id) if not r["read"])


class FakeCatalogRepository:
    def __init__(self) -> None:
        self.products: Dict[str, dict] = {}

    def add(self, product_id: str, *, title: str = "", duration_days=None, duration_label=None, duration=None) -> None:
        self.products[product_id] = {
            "id": product_id,
            "title": title,
            "duration_days": duration_days,
            "duration_label": duration_label,
            "duration": duration,
            "published_notified_at": None,
        }

    async def get_product(self, product_id: str) -> Optional[dict]:
        await asyncio.sleep(0)
        product = self.products.get(product_id)
        return dict(product) if product else None

    async def get_product_duration_config(self, product_id: str) -> Optional[dict]:
        product = await self.get_product(product_id)
        if not product:
            return None
        return {
            "duration_days": product["duration_days"],
            "duration_label": product["duration_label"],
            "duration": product["duration"],
        }

    async def mark_published_notified(self, product_id: str) -> bool:
        product = self.products.get(product_id)
        if not product or product["published_notified_at"] is not None:
            return False
        product["published_notified_at"] = NOW
        return True


class FakeUserRepository:
    def __init__(self) -> None:
        self.user_ids: List[str] = []

    async def ensure_user(self, user_id: str) -> bool:
        if user_id in self.user_ids:
            return False
        self.user_ids.append(user_id)
        return True

    async def list_user_ids(self) -> List[str]:
        return list(self.user_ids)


class FakeGateway:
    def __init__(self) -> None:
        self.invoice = GatewayInvoice(
            invoice_id="gw-new",
            qr_text="0002010102121531279404962794049600022310027138",
            qr_image="iVBORw0KGgo=",
            short_url="https://s.qpay.mn/abc",
        )
        self.paid: Dict[str, GatewayPaymentStatus] = {}
        self.create_calls: List[dict] = []
        self.check_calls: List[str] = []
        self.fail_create = False
        self.fail_check = False

    async def create_invoice(self, **kwargs: Any) -> GatewayInvoice:
        self.create_calls.append(kwargs)
        if self.fail_create:
            raise GatewayInvoiceError("QPay invoice failed (500): {\"raw\": \"internal\"}")
        return self.invoice

    async def check_payment(self, gateway_invoice_id: str) -> GatewayPaymentStatus:
        self.check_calls.append(gateway_invoice_id)
        await asyncio.sleep(0)
        if self.fail_check:
            raise GatewayInvoiceError("QPay payment/check failed (503)")
        return self.paid.get(gateway_invoice_id, GatewayPaymentStatus(paid=False))

    def mark_paid(self, gateway_invoice_id: str, amount: int = 0) -> None:
        self.paid[gateway_invoice_id] = GatewayPaymentStatus(paid=True, paid_amount=amount)


@pytest.fixture
def world() -> SimpleNamespace:
    invoices = InMemoryInvoiceRepository()
    entitlements = InMemoryEntitlementRepository(invoices)
    notification_repo = InMemoryNotificationRepository()
    catalog = FakeCatalogRepository()
    catalog.add("course-1", title="Python анхан шат", duration_label="3 сар")
    users = FakeUserRepository()
    gateway = FakeGateway()

    notifications = NotificationService(notification_repo)
    granter = EntitlementGranter(entitlements, catalog, notifications, clock=lambda: NOW)
    invoice_service = InvoiceService(
        invoices,
        gateway,
        public_base_url="https://courses.example.mn/",
        callback_secret="cb-secret",
    )
    payments = PaymentService(invoices, gateway, granter)
    publisher = PublishNotifier(catalog, users, notifications)

    return SimpleNamespace(
        invoices=invoices,
        entitlements=entitlements,
        notification_repo=notification_repo,
        catalog=catalog,
        users=users,
        gateway=gateway,
        notifications=notifications,
        granter=granter,
        invoice_service=invoice_service,
        payments=payments,
        publisher=publisher,
    )


@pytest.fixture
def make_config():
    def _make(**overrides: Any) -> Config:
        values = {
            "database_url": "postgresql://localhost/checkout",
            "qpay_base_url": "https://merchant.qpay.mn/",
            "qpay_username": "client",
            "qpay_password": "secret",
            "qpay_invoice_code": "TEST_INVOICE",
            "qpay_invoice_receiver_code": "terminal",
            "public_base_url": "https://courses.example.mn",
            "auth_token_secret": "jwt-secret",
            "qpay_callback_secret": "cb-secret",
            "admin_user_ids": "admin-1",
        }
        values.update(overrides)
        return Config(**values)

    return _make


@pytest.fixture
def now() -> datetime:
    return NOW


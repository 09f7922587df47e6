"""Pytest bootstrap configuration.

Ensure environment variables are set before test collection and module
imports that depend on application settings, and provide in-memory
stand-ins for the unit of work, the Polar gateway and the email sender.
"""
import os

os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("POLAR__WEBHOOK_SECRET", "polar_whs_test_secret")
os.environ.setdefault("POLAR__ACCESS_TOKEN", "polar_oat_test_token")

import base64
import copy
import hashlib
import hmac
import json
import time
from typing import Any, Dict, List, Optional

import pytest

from application.dtos.payments import (
    CheckoutSession,
    CreateCheckout,
    CreateRefund,
    InvoiceGeneration,
    InvoiceLink,
    RefundResult,
)
from application.dtos.webhooks import WebhookEnvelope, parse_event
from application.ports.notifier import InvoiceEmail, RefundEmail
from domain.common.exceptions import (
    PaymentAlreadyExistsException,
    PaymentNotFoundException,
    UserAlreadyExistsException,
    UserNotFoundException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.entity import Payment, PaymentStatus
from domain.payment.repository import PaymentRepository
from domain.product.entity import BillingInterval, Product
from domain.product.repository import ProductRepository
from domain.user.entity import SubscriptionTier, User
from domain.user.repository import UserRepository


WEBHOOK_SECRET = os.environ["POLAR__WEBHOOK_SECRET"]

PRO_PRODUCT_ID = "35a2afdc-3dbc-4d68-9e0c-36527c0b48bd"
ENTERPRISE_PRODUCT_ID = "2c999f50-cb0b-42c0-b19f-50d12db11e71"


def sign_webhook(body: bytes, *, secret: str = WEBHOOK_SECRET, msg_id: str = "msg_1", timestamp: Optional[int] = None) -> dict:
    """Standard Webhooks headers; the raw secret bytes are the HMAC key."""
    ts = str(int(time.time()) if timestamp is None else timestamp)
    signed = f"{msg_id}.{ts}.".encode() + body
    digest = hmac.new(secret.encode(), signed, hashlib.sha256).digest()
    return {
        "webhook-id": msg_id,
        "webhook-timestamp": ts,
        "webhook-signature": "v1," + base64.b64encode(digest).decode(),
    }


# ---- in-memory repositories ----


class InMemoryStore:
    def __init__(self) -> None:
        self.payments: Dict[int, Payment] = {}
        self.users: Dict[int, User] = {}
        self.products: Dict[str, Product] = {}
        self._payment_seq = 0
        self._user_seq = 0

    def next_payment_id(self) -> int:
        self._payment_seq += 1
        return self._payment_seq

    def next_user_id(self) -> int:
        self._user_seq += 1
        return self._user_seq


class InMemoryPaymentRepository(PaymentRepository):
    def __init__(self, store: InMemoryStore) -> None:
        self.store = store

    async def create(self, payment: Payment) -> Payment:
        if any(p.checkout_id == payment.checkout_id for p in self.store.payments.values()):
            raise PaymentAlreadyExistsException(payment.checkout_id)
        saved = copy.deepcopy(payment)
        saved.id = self.store.next_payment_id()
        self.store.payments[saved.id] = saved
        return copy.deepcopy(saved)

    def _find(self, predicate) -> Optional[Payment]:
        for payment in sorted(self.store.payments.values(), key=lambda p: p.id, reverse=True):
            if predicate(payment):
                return copy.deepcopy(payment)
        return None

    async def get_by_id(self, payment_id: int) -> Optional[Payment]:
        return self._find(lambda p: p.id == payment_id)

    async def get_by_checkout_id(self, checkout_id: str) -> Optional[Payment]:
        return self._find(lambda p: p.checkout_id == checkout_id)

    async def get_by_order_id(self, order_id: str) -> Optional[Payment]:
        return self._find(lambda p: p.order_id == order_id)

    async def get_by_subscription_id(self, subscription_id: str) -> Optional[Payment]:
        return self._find(lambda p: p.subscription_id == subscription_id)

    async def list_by_email(self, email: str, skip: int = 0, limit: int = 100, status: Optional[PaymentStatus] = None) -> List[Payment]:
        rows = [
            p for p in self.store.payments.values()
            if p.customer_email == email.lower() and (status is None or p.status == status)
        ]
        rows.sort(key=lambda p: (p.created_at, p.id), reverse=True)
        return [copy.deepcopy(p) for p in rows[skip:skip + limit]]

    async def update(self, payment: Payment) -> Payment:
        if payment.id not in self.store.payments:
            raise PaymentNotFoundException(str(payment.id))
        self.store.payments[payment.id] = copy.deepcopy(payment)
        return copy.deepcopy(payment)


class InMemoryUserRepository(UserRepository):
    def __init__(self, store: InMemoryStore) -> None:
        self.store = store

    async def create(self, user: User) -> User:
        if any(u.email == user.email for u in self.store.users.values()):
            raise UserAlreadyExistsException(user.email)
        saved = copy.deepcopy(user)
        saved.id = self.store.next_user_id()
        self.store.users[saved.id] = saved
        return copy.deepcopy(saved)

    def _find(self, predicate) -> Optional[User]:
        for user in self.store.users.values():
            if predicate(user):
                return copy.deepcopy(user)
        return None

    async def get_by_id(self, user_id: int) -> Optional[User]:
        return self._find(lambda u: u.id == user_id)

    async def get_by_email(self, email: str) -> Optional[User]:
        return self._find(lambda u: u.email == email.strip().lower())

    async def get_by_customer_id(self, customer_id: str) -> Optional[User]:
        return self._find(lambda u: u.polar_customer_id == customer_id)

    async def get_by_subscription_id(self, subscription_id: str) -> Optional[User]:
        return self._find(lambda u: u.subscription_id == subscription_id)

    async def update(self, user: User) -> User:
        if user.id not in self.store.users:
            raise UserNotFoundException(str(user.id))
        self.store.users[user.id] = copy.deepcopy(user)
        return copy.deepcopy(user)


class InMemoryProductRepository(ProductRepository):
    def __init__(self, store: InMemoryStore) -> None:
        self.store = store

    async def get_by_polar_id(self, polar_product_id: str) -> Optional[Product]:
        return copy.deepcopy(self.store.products.get(polar_product_id))

    async def list_active(self) -> List[Product]:
        return sorted((p for p in self.store.products.values() if p.active), key=lambda p: p.price)

    async def create(self, product: Product) -> Product:
        product.id = len(self.store.products) + 1
        self.store.products[product.polar_product_id] = product
        return product


class InMemoryUnitOfWork(AbstractUnitOfWork):
    def __init__(self, store: InMemoryStore, *, readonly: bool = False) -> None:
        super().__init__(readonly=readonly)
        self.store = store
        self.commits = 0

    async def __aenter__(self) -> "InMemoryUnitOfWork":
        self.payment_repository = InMemoryPaymentRepository(self.store)
        self.user_repository = InMemoryUserRepository(self.store)
        self.product_repository = InMemoryProductRepository(self.store)
        return self

    async def commit(self) -> None:
        self.commits += 1
        self._committed = True

    async def rollback(self) -> None:
        self._committed = False


def seed_products(store: InMemoryStore) -> None:
    for product in (
        Product(id=1, polar_product_id="free", name="Free", tier=SubscriptionTier.FREE, price=0, interval=BillingInterval.FOREVER),
        Product(id=2, polar_product_id=PRO_PRODUCT_ID, name="Pro", tier=SubscriptionTier.PRO, price=999, highlighted=True),
        Product(id=3, polar_product_id=ENTERPRISE_PRODUCT_ID, name="Enterprise", tier=SubscriptionTier.ENTERPRISE, price=2999),
    ):
        store.products[product.polar_product_id] = product


# ---- collaborators ----


class StubPolarGateway:
    provider = "stub"

    def __init__(self) -> None:
        self.calls: List[tuple] = []
        self.invoice_url: Optional[str] = "https://polar.example/invoices/ord_1.pdf"
        self.fail_with: Optional[Exception] = None

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, *args))
        if self.fail_with is not None:
            raise self.fail_with

    async def create_checkout(self, req: CreateCheckout) -> CheckoutSession:
        self._record("create_checkout", req.product_id)
        return CheckoutSession(id="chk_new", url="https://polar.example/checkout/chk_new")

    async def get_checkout(self, checkout_id: str) -> dict:
        self._record("get_checkout", checkout_id)
        return {"id": checkout_id, "status": "open"}

    async def generate_invoice(self, order_id: str) -> InvoiceGeneration:
        self._record("generate_invoice", order_id)
        return InvoiceGeneration(order_id=order_id, status="scheduled")

    async def get_invoice(self, order_id: str) -> Optional[InvoiceLink]:
        self._record("get_invoice", order_id)
        if self.invoice_url is None:
            return None
        return InvoiceLink(order_id=order_id, url=self.invoice_url)

    async def create_refund(self, req: CreateRefund) -> RefundResult:
        self._record("create_refund", req.order_id, req.amount)
        return RefundResult(id="ref_new", order_id=req.order_id, amount=req.amount, status="pending", reason=req.reason)

    async def list_refunds(self, order_id: str) -> List[RefundResult]:
        self._record("list_refunds", order_id)
        return []

    def parse_webhook(self, headers: dict, body: bytes) -> WebhookEnvelope:
        return WebhookEnvelope(webhook_id=headers.get("webhook-id", "msg_stub"), event=parse_event(json.loads(body)))

    async def aclose(self) -> None:
        return None

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)


class RecordingEmailSender:
    def __init__(self) -> None:
        self.invoices: List[InvoiceEmail] = []
        self.refunds: List[RefundEmail] = []

    async def send_invoice(self, message: InvoiceEmail) -> None:
        self.invoices.append(message)

    async def send_refund(self, message: RefundEmail) -> None:
        self.refunds.append(message)


# ---- fixtures ----


@pytest.fixture
def store() -> InMemoryStore:
    s = InMemoryStore()
    seed_products(s)
    return s


@pytest.fixture
def uow_factory(store):
    def factory(readonly: bool = False) -> InMemoryUnitOfWork:
        return InMemoryUnitOfWork(store, readonly=readonly)

    return factory


@pytest.fixture
def gateway() -> StubPolarGateway:
    return StubPolarGateway()


@pytest.fixture
def email_sender() -> RecordingEmailSender:
    return RecordingEmailSender()

"""
SQLAlchemy repositories against an in-memory SQLite database.
"""
import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlalchemy.pool import StaticPool

from domain.common.exceptions import PaymentAlreadyExistsException, UserAlreadyExistsException
from domain.payment.entity import Payment, PaymentStatus
from domain.product.entity import Product
from domain.user.entity import SubscriptionTier, User
from infrastructure.database import build_engine
from infrastructure.models import Base
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


class SQLiteDatabase:
    """Creates the schema on enter and disposes the engine on exit, inside the test's loop."""

    def __init__(self) -> None:
        self.engine = build_engine("sqlite+aiosqlite://", poolclass=StaticPool)
        self._session_factory = async_sessionmaker(bind=self.engine, expire_on_commit=False)

    def uow(self, readonly: bool = False) -> SQLAlchemyUnitOfWork:
        return SQLAlchemyUnitOfWork(session_factory=self._session_factory, readonly=readonly)

    async def __aenter__(self):
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        return self.uow

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.engine.dispose()


@pytest.fixture
def database() -> SQLiteDatabase:
    return SQLiteDatabase()


def _payment(checkout_id: str, email: str = "a@x.com", **kwargs) -> Payment:
    return Payment(
        id=None,
        checkout_id=checkout_id,
        product_id="prod",
        amount=kwargs.pop("amount", 999),
        customer_email=email,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_duplicate_checkout_is_rejected_without_losing_the_transaction(database):
    async with database as uow_factory:
        async with uow_factory() as uow:
            first = await uow.payment_repository.create(_payment("co_1"))
            with pytest.raises(PaymentAlreadyExistsException):
                await uow.payment_repository.create(_payment("co_1"))
            # the outer transaction is still usable after the savepoint rollback
            await uow.payment_repository.create(_payment("co_2"))

        async with uow_factory(readonly=True) as uow:
            assert (await uow.payment_repository.get_by_checkout_id("co_1")).id == first.id
            assert await uow.payment_repository.get_by_checkout_id("co_2") is not None


@pytest.mark.asyncio
async def test_order_and_subscription_ids_are_searchable(database):
    async with database as uow_factory:
        async with uow_factory() as uow:
            payment = await uow.payment_repository.create(_payment("co_1"))
            payment.merge_metadata(order_id="ord_1", subscription_id="sub_1")
            payment.mark_completed()
            await uow.payment_repository.update(payment)

        async with uow_factory(readonly=True) as uow:
            by_order = await uow.payment_repository.get_by_order_id("ord_1")
            by_sub = await uow.payment_repository.get_by_subscription_id("sub_1")

    assert by_order.checkout_id == "co_1"
    assert by_order.status == PaymentStatus.COMPLETED
    assert by_order.metadata["order_id"] == "ord_1"
    assert by_sub.id == by_order.id


@pytest.mark.asyncio
async def test_list_by_email_filters_status_newest_first(database):
    async with database as uow_factory:
        async with uow_factory() as uow:
            repo = uow.payment_repository
            completed = await repo.create(_payment("co_1"))
            completed.mark_completed()
            await repo.update(completed)
            await repo.create(_payment("co_2"))
            await repo.create(_payment("co_3", email="someone@else.com"))

        async with uow_factory(readonly=True) as uow:
            everything = await uow.payment_repository.list_by_email("A@X.com")
            only_completed = await uow.payment_repository.list_by_email("a@x.com", status=PaymentStatus.COMPLETED)
            paged = await uow.payment_repository.list_by_email("a@x.com", skip=1, limit=1)

    assert [p.checkout_id for p in everything] == ["co_2", "co_1"]
    assert [p.checkout_id for p in only_completed] == ["co_1"]
    assert [p.checkout_id for p in paged] == ["co_1"]


@pytest.mark.asyncio
async def test_rollback_on_error_discards_writes(database):
    async with database as uow_factory:
        with pytest.raises(RuntimeError):
            async with uow_factory() as uow:
                await uow.payment_repository.create(_payment("co_1"))
                raise RuntimeError("handler failed")

        async with uow_factory(readonly=True) as uow:
            assert await uow.payment_repository.get_by_checkout_id("co_1") is None


@pytest.mark.asyncio
async def test_user_email_is_unique(database):
    async with database as uow_factory:
        async with uow_factory() as uow:
            user = await uow.user_repository.create(User(id=None, email="A@x.com"))
            with pytest.raises(UserAlreadyExistsException):
                await uow.user_repository.create(User(id=None, email="a@x.com"))
            user.payment_ids.append(7)
            user.subscription_tier = SubscriptionTier.PRO
            await uow.user_repository.update(user)

        async with uow_factory(readonly=True) as uow:
            saved = await uow.user_repository.get_by_email("a@x.com")

    assert saved.payment_ids == [7]
    assert saved.subscription_tier == SubscriptionTier.PRO


@pytest.mark.asyncio
async def test_products_listed_by_price(database):
    async with database as uow_factory:
        async with uow_factory() as uow:
            await uow.product_repository.create(
                Product(id=None, polar_product_id="p_ent", name="Enterprise", tier=SubscriptionTier.ENTERPRISE, price=2999)
            )
            await uow.product_repository.create(
                Product(id=None, polar_product_id="p_pro", name="Pro", tier=SubscriptionTier.PRO, price=999)
            )

        async with uow_factory(readonly=True) as uow:
            products = await uow.product_repository.list_active()
            pro = await uow.product_repository.get_by_polar_id("p_pro")

    assert [p.polar_product_id for p in products] == ["p_pro", "p_ent"]
    assert pro.tier == SubscriptionTier.PRO

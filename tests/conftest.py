"""Pytest configuration and shared fixtures."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("CELERY_TASK_ALWAYS_EAGER", "true")

import threading
import time
from concurrent.futures import Future
from decimal import Decimal

import pytest
import redis
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import storefront.data.models  # noqa: F401
from storefront.data.database import Base
from storefront.data.models import OrderItemModel, OrderModel, PaymentModel
from storefront.domain.cart import ResolvedProduct
from storefront.domain.errors import CatalogLookupFailed, InsufficientStock
from storefront.domain.states import ProductType
from storefront.repos.cart_repo import CartRepo
from storefront.services.product_cache import ProductResolutionCache


class FakeProductClient:
    """Katalog w pamieci, liczy wywolania i pozwala wstrzymac fetch."""

    def __init__(self, products=None):
        self.products = dict(products or {})
        self.calls = []
        self.decrements = []
        self.restocks = []
        self.failures = {}
        self.gate = None
        self._lock = threading.Lock()

    def fetch_product(self, product_id, product_type=ProductType.PRIMARY):
        with self._lock:
            self.calls.append((product_id, ProductType(product_type)))
        if self.gate is not None:
            self.gate.wait(timeout=5)
        remaining = self.failures.get(product_id, 0)
        if remaining:
            self.failures[product_id] = remaining - 1
            raise CatalogLookupFailed(product_id, ProductType(product_type).value, "catalog down")
        if product_id not in self.products:
            raise CatalogLookupFailed(product_id, ProductType(product_type).value, "404 Not Found")
        return self.products[product_id].model_copy(update={"type": ProductType(product_type)})

    def decrement_stock(self, product_id, quantity, product_type=ProductType.PRIMARY):
        product = self.products[product_id]
        if product.stock_quantity < quantity:
            raise InsufficientStock(product_id, quantity)
        self.products[product_id] = product.model_copy(
            update={"stock_quantity": product.stock_quantity - quantity}
        )
        self.decrements.append((product_id, quantity))
        return self.products[product_id].stock_quantity

    def restock(self, product_id, quantity, product_type=ProductType.PRIMARY):
        product = self.products[product_id]
        self.products[product_id] = product.model_copy(
            update={"stock_quantity": product.stock_quantity + quantity}
        )
        self.restocks.append((product_id, quantity))
        return self.products[product_id].stock_quantity


class FakeRedis:
    """Minimalny klient redis (get/set) do testow magazynu koszyka."""

    def __init__(self, fail=False):
        self.data = {}
        self.fail = fail

    def get(self, name):
        if self.fail:
            raise redis.ConnectionError("redis is down")
        return self.data.get(name)

    def set(self, name, value, ex=None):
        if self.fail:
            raise redis.ConnectionError("redis is down")
        self.data[name] = value
        return True


class RecordingNotifier:
    def __init__(self):
        self.orders = []
        self.refunds = []

    def send_order_notification(self, user_id, order_id, status):
        self.orders.append((user_id, order_id, status))

    def send_refund_request(self, order_id, payment_id, amount, sla_days):
        self.refunds.append((order_id, payment_id, amount, sla_days))


def product(product_id, price, stock=10, title=None, promotion=None):
    return ResolvedProduct(
        id=product_id,
        type=ProductType.PRIMARY,
        title=title or f"Book {product_id}",
        unit_price=Decimal(price),
        stock_quantity=stock,
        promotion_percentage=Decimal(promotion) if promotion is not None else None,
    )


@pytest.fixture
def catalog():
    return FakeProductClient(
        {
            "42": product("42", "20.00", stock=30),
            "1": product("1", "32.50", stock=12, promotion="10"),
            "2": product("2", "41.00", stock=4),
            "99": product("99", "15.00", stock=0),
        }
    )


class ImmediateExecutor:
    """Executor wykonujacy zadanie od razu w watku wywolujacym."""

    def submit(self, fn, *args, **kwargs):
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future

    def shutdown(self, wait=True, cancel_futures=False):
        pass


def eventually(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def product_cache(catalog):
    cache = ProductResolutionCache(catalog, executor=ImmediateExecutor())
    yield cache
    cache.shutdown()


@pytest.fixture
def threaded_cache(catalog):
    cache = ProductResolutionCache(catalog)
    yield cache
    if catalog.gate is not None:
        catalog.gate.set()
    cache.shutdown()


@pytest.fixture
def wait_until():
    return eventually


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def cart_repo(fake_redis):
    return CartRepo(client=fake_redis)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(db_engine):
    session = sessionmaker(bind=db_engine, autoflush=False)()
    yield session
    session.close()


@pytest.fixture
def make_order(db):
    """Wstawia zamowienie z platnoscia w zadanym stanie."""

    def _make(
        status="PENDING_PAYMENT",
        method="GATEWAY",
        payment_status="PENDING",
        payment_id=None,
        user_id=1,
        items=(("42", 2, "20.00"),),
    ):
        total = sum((Decimal(price) * qty for _, qty, price in items), Decimal("0.00"))
        order = OrderModel(
            user_id=user_id,
            status=status,
            address="12 Library Street",
            total=total,
            version=1,
            items=[
                OrderItemModel(
                    product_id=pid,
                    product_type="PRIMARY",
                    title=f"Book {pid}",
                    quantity=qty,
                    unit_price=Decimal(price),
                )
                for pid, qty, price in items
            ],
        )
        db.add(order)
        db.flush()
        db.add(
            PaymentModel(
                id=payment_id,
                order_id=order.id,
                method=method,
                status=payment_status,
                amount=total,
                version=1,
            )
        )
        db.commit()
        return order.id

    return _make

# storefront/main.py
from contextlib import asynccontextmanager

from fastapi import FastAPI
import uvicorn

from storefront.api.routers import carts, health, orders, payments
from storefront.data.database import Base, engine
from storefront.repos.cart_repo import CartRepo
from storefront.services.cart_service import CartRegistry
from storefront.services.notification_service import NotificationService
from storefront.services.pricing import PricingPolicy
from storefront.services.product_cache import ProductResolutionCache
from storefront.services.product_client import ProductClient
from storefront.utils.logging import get_logger

# import wszystkich modeli przed create_all
import storefront.data.models  # noqa: F401

logger = get_logger(__name__)


def init_db(bind=engine):
    logger.info(f"Initializing database, tables: {list(Base.metadata.tables.keys())}")
    Base.metadata.create_all(bind=bind)


def create_app(
    product_client: ProductClient | None = None,
    cart_repo: CartRepo | None = None,
    notification_service: NotificationService | None = None,
    pricing_policy: PricingPolicy | None = None,
    create_tables: bool = True,
) -> FastAPI:
    product_client = product_client or ProductClient()
    product_cache = ProductResolutionCache(product_client)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if create_tables:
            init_db()
        yield
        product_cache.shutdown()

    app = FastAPI(
        title="Storefront Order Service",
        version="1.0.0",
        lifespan=lifespan,
    )

    # stan wspolny dla requestow: cache katalogu i koszyki klientow
    app.state.product_client = product_client
    app.state.product_cache = product_cache
    app.state.notifications = notification_service or NotificationService()
    app.state.carts = CartRegistry(
        repo=cart_repo or CartRepo(),
        cache=product_cache,
        policy=pricing_policy,
    )

    # Include routers
    app.include_router(health.router)
    app.include_router(carts.router)
    app.include_router(orders.router)
    app.include_router(payments.router)

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)

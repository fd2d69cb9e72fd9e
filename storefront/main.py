# storefront/main.py
from fastapi import FastAPI
from storefront.data.database import init_db
from storefront.api.handlers import register_exception_handlers
from storefront.api.routers import (
    addresses,
    carts,
    health,
    notifications,
    orders,
    payments,
    users,
)
from storefront.services.momo_client import MomoClient, TokenCache
from storefront.utils.logging import get_logger
import uvicorn

logger = get_logger(__name__)


def create_app(momo_client: MomoClient | None = None) -> FastAPI:
    app = FastAPI(
        title="Storefront API",
        version="1.0.0",
    )

    logger.info("Initializing database")
    init_db()

    # jeden klient MoMo (i jeden cache tokena) na proces
    app.state.momo_client = momo_client or MomoClient(token_cache=TokenCache())

    register_exception_handlers(app)

    # Include routers
    app.include_router(health.router)
    app.include_router(users.router)
    app.include_router(addresses.router)
    app.include_router(carts.router)
    app.include_router(orders.router)
    app.include_router(payments.router)
    app.include_router(notifications.router)

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)

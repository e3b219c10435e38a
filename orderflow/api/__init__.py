# orderflow/api/__init__.py
from fastapi import FastAPI

from orderflow.api.errors import register_error_handlers
from orderflow.api.routers import carts, health, orders, payments


def create_app() -> FastAPI:
    app = FastAPI(
        title="Order Service",
        version="1.0.0",
    )

    register_error_handlers(app)

    app.include_router(health.router)
    app.include_router(carts.router)
    app.include_router(orders.router)
    app.include_router(payments.router)

    return app

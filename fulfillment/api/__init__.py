# fulfillment/api/__init__.py
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

import fulfillment.data.models  # noqa: F401
from fulfillment.api.routers import backoffice, carts, health, orders, webhooks
from fulfillment.domain.errors import DomainError
from fulfillment.utils.logging import get_logger

logger = get_logger(__name__)


def create_app() -> FastAPI:
    app = FastAPI(title="Order Fulfillment", version="1.0.0")

    @app.exception_handler(DomainError)
    async def domain_error_handler(request: Request, exc: DomainError):
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})

    app.include_router(health.router)
    app.include_router(carts.router)
    app.include_router(orders.router)
    app.include_router(backoffice.router)
    app.include_router(webhooks.router)
    return app

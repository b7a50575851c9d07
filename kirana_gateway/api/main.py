"""FastAPI application factory"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from kirana_gateway.api.errors import register_error_handlers
from kirana_gateway.api.middleware import RequestIDMiddleware, MetricsMiddleware
from kirana_gateway.api.v1 import credit, customers, deliveries, invoices, payments, settings as shop_settings, subscriptions
from kirana_gateway.infrastructure.database.session import init_db
from kirana_gateway.infrastructure.observability.logging import setup_logging
from kirana_gateway.config import settings

# Setup structured logging
setup_logging(settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Kirana Gateway",
        description="Recurring deliveries, customer credit and billing for kirana stores",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_error_handlers(app)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(customers.router, prefix="/v1", tags=["customers"])
    app.include_router(subscriptions.router, prefix="/v1", tags=["subscriptions"])
    app.include_router(deliveries.router, prefix="/v1", tags=["deliveries"])
    app.include_router(credit.router, prefix="/v1", tags=["credit"])
    app.include_router(invoices.router, prefix="/v1", tags=["invoices"])
    app.include_router(payments.router, prefix="/v1", tags=["payments"])
    app.include_router(shop_settings.router, prefix="/v1", tags=["settings"])

    return app


app = create_app()

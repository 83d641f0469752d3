import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from prometheus_client import make_asgi_app

from canteen.config import Settings, get_settings
from canteen.container import Services, build_services
from canteen.database import create_tables
from canteen.errors import register_error_handlers
from canteen.middleware.metrics import MetricsMiddleware
from canteen.middleware.request_id import RequestIDMiddleware
from canteen.routers import feedback, orders, webhooks
from canteen.utils.logging import setup_logging
from shared.tracing import setup_tracing, shutdown_tracing

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None, services: Services | None = None) -> FastAPI:
    """
    Build the API. When ``services`` is given (tests), it is used as-is and
    owned by the caller; otherwise services are built and torn down by the
    lifespan.
    """
    settings = settings or get_settings()
    tracer_provider = setup_tracing(
        "canteen-api", settings.otlp_endpoint, settings.trace_sample_ratio
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if services is not None:
            yield
            return

        built = build_services(settings)
        logger.info("Starting up, creating database tables")
        await create_tables(built.engine)
        if tracer_provider is not None:
            SQLAlchemyInstrumentor().instrument(engine=built.engine.sync_engine)
        await built.start()
        app.state.services = built
        logger.info("Startup complete")

        yield

        logger.info("Shutting down")
        await built.aclose()
        shutdown_tracing(tracer_provider)

    app = FastAPI(
        title="Campus Canteen Ordering",
        description="Order lifecycle and payment reconciliation",
        version="1.0.0",
        lifespan=lifespan,
    )
    if services is not None:
        app.state.services = services

    if tracer_provider is not None:
        FastAPIInstrumentor.instrument_app(app)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)
    register_error_handlers(app)

    app.include_router(orders.router, prefix="/orders", tags=["orders"])
    app.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])
    app.include_router(feedback.router, prefix="/feedback", tags=["feedback"])

    # Expose Prometheus metrics at /metrics
    app.mount("/metrics", make_asgi_app())

    @app.get("/health", tags=["health"])
    async def health():
        return {"status": "ok"}

    return app


def run() -> FastAPI:
    settings = get_settings()
    setup_logging(settings.log_level, service="canteen-api")
    return create_app(settings)

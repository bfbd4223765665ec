from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from prometheus_fastapi_instrumentator import Instrumentator
import structlog

from storefront.version import VERSION
from storefront.api import cart, coupons, orders, products
from storefront.api.deps import build_services
from storefront.core.config import settings
from storefront.core.logging import configure_logging
from storefront.errors import StorageFailure, StorefrontError
from storefront.kafka import producer
from storefront.store.base import Store
from storefront.store.memory import MemoryStore
from storefront.store.seed import seed_catalog

log = structlog.get_logger(__name__)


def build_store() -> Store:
    if settings.STORE_BACKEND == "sql":
        from storefront.store.sql import SqlStore
        return SqlStore.from_urls(settings.POSTGRES_DSN, settings.REDIS_URL)
    store = MemoryStore()
    if settings.SEED_SAMPLE_DATA:
        seed_catalog(store)
    return store


def _error(status_code: int, message: str, error: str, details: dict | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"message": message, "error": error, "details": jsonable_encoder(details or {})},
    )


def create_app(store: Store | None = None) -> FastAPI:
    configure_logging()
    app = FastAPI(title="Storefront Service", version=VERSION)

    # Instrument the app BEFORE adding routes or middleware
    Instrumentator().instrument(app).expose(app, include_in_schema=False, endpoint="/metrics", should_gzip=True)

    publish = producer.publish_order_event if settings.EVENTS_ENABLED else None
    app.state.services = build_services(store if store is not None else build_store(), publish=publish)

    @app.exception_handler(StorefrontError)
    async def storefront_error(request: Request, exc: StorefrontError):
        if isinstance(exc, StorageFailure):
            log.error("storage.failure", operation=exc.operation, path=request.url.path,
                      cause=repr(exc.cause))
        return _error(exc.status_code, exc.message, exc.code, exc.details)

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        return _error(400, "Validation failed", "VALIDATION_ERROR", {"errors": exc.errors()})

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        return _error(exc.status_code, str(exc.detail), "HTTP_ERROR")

    # Health endpoints
    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.get("/v1/_info")
    def info():
        return {"service": "storefront", "version": VERSION}

    @app.on_event("startup")
    async def startup_event():
        for route in app.routes:
            if hasattr(route, "methods") and hasattr(route, "path"):
                log.debug("route", methods=sorted(route.methods), path=route.path)

    @app.on_event("shutdown")
    async def shutdown_event():
        producer.close()

    app.include_router(products.router, prefix="/products", tags=["products"])
    app.include_router(cart.router, prefix="/cart", tags=["cart"])
    app.include_router(orders.checkout_router, prefix="/checkout", tags=["orders"])
    app.include_router(orders.router, prefix="/orders", tags=["orders"])
    app.include_router(coupons.router, prefix="/coupons", tags=["coupons"])
    return app


app = create_app()

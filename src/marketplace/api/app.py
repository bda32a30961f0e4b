"""Marketplace FastAPI application.

Processes order commands synchronously via HTTP. Every request runs inside
the marketplace domain context.

See ``src/app.py`` for the uvicorn entry point.
"""

from uuid import uuid4

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from protean.exceptions import ValidationError

from marketplace.api.routes import order_router
from marketplace.config import Settings, get_settings
from marketplace.domain import marketplace as domain
from marketplace.errors import MarketplaceError
from marketplace.identity.auth import IdentityResolver, InMemoryIdentityResolver
from marketplace.utils.logging import bind_request_context, clear_request_context, configure_logging

logger = structlog.get_logger(__name__)


async def marketplace_error_handler(request: Request, exc: MarketplaceError) -> JSONResponse:
    if exc.http_status >= 500:
        logger.warning("Request failed", path=request.url.path, kind=exc.kind, message=exc.message)
    return JSONResponse(status_code=exc.http_status, content={"error": exc.to_dict()})


async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"error": {"kind": "InvalidArgument", "message": str(exc.messages)}},
    )


async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = sorted({".".join(str(part) for part in error["loc"][1:]) for error in exc.errors()})
    return JSONResponse(
        status_code=400,
        content={"error": {"kind": "InvalidArgument", "message": f"Malformed request: {', '.join(fields)}"}},
    )


def create_app(settings: Settings | None = None, identity: IdentityResolver | None = None) -> FastAPI:
    """Build the API, resolving bearer tokens through ``identity``.

    The domain must already be initialized.
    """
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(
        title="Marketplace API",
        description="Order lifecycle: stock reservation, fulfilment and escrow",
    )
    app.state.identity = identity or InMemoryIdentityResolver()

    @app.middleware("http")
    async def domain_context_middleware(request: Request, call_next):
        """Push the domain context and a request id for each request."""
        clear_request_context()
        bind_request_context(request_id=request.headers.get("x-request-id", str(uuid4())))
        with domain.domain_context():
            return await call_next(request)

    app.add_exception_handler(MarketplaceError, marketplace_error_handler)
    app.add_exception_handler(ValidationError, validation_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.include_router(order_router)

    @app.get("/health")
    async def health():
        return {"status": "ok", "domain": domain.name}

    return app

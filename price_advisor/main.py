import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Routers
from .routers.advice import router as advice_router

# Core modules
from .core.config import settings
from .core.errors import AdvisorError
from .core.logging import configure_logging, CorrelationIdMiddleware
from .core.metrics import PromMiddleware, metrics_endpoint

logger = logging.getLogger(__name__)

def register_error_handlers(app: FastAPI) -> None:
    """
    Pipeline failures leave as {ok: false, error, code} with their own status.
    """
    @app.exception_handler(AdvisorError)
    async def advisor_error(request: Request, exc: AdvisorError):
        logger.warning("%s on %s: %s", exc.code, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def bad_request(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"ok": False, "error": "Malformed request body", "code": "BAD_REQUEST"},
        )

def create_app() -> FastAPI:
    """
    App factory so tests and ASGI servers can instantiate cleanly.
    """
    configure_logging()  # Set up JSON logs + correlation-id filter

    app = FastAPI(
        title="Price Advisor API",
        version="1.0.0",
        description="Listing price advice: web evidence, LLM estimate, reconciled into a sane price band.",
    )

    # CORS: only the marketplace front-ends may call the API from a browser.
    allow_origins = [o.strip() for o in settings.ALLOW_ORIGINS.split(",") if o.strip()] or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials=False,
        allow_methods=["POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-Plan", "x-openai-key", "x-api-key", "X-Request-Id"],
        expose_headers=["X-Request-Id"],
        max_age=600,
    )

    # Observability middlewares
    app.add_middleware(CorrelationIdMiddleware)  # Adds/propagates X-Request-Id
    if settings.PROMETHEUS_ENABLED:
        app.add_middleware(PromMiddleware)       # Records req/latency metrics

    register_error_handlers(app)

    # Meta routes
    @app.get("/v1/health", tags=["meta"])
    def health():
        return {"status": "ok"}

    @app.get("/v1/ping", tags=["meta"])
    def ping():
        return {"pong": True}

    if settings.PROMETHEUS_ENABLED:
        # Standard Prometheus scrape endpoint
        app.add_route("/v1/metrics", metrics_endpoint, methods=["GET"])

    # Business routes
    app.include_router(advice_router, prefix="/v1", tags=["advice"])

    return app

app = create_app()

# server.py
import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import APIRouter, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from shopfront import __version__
from shopfront.categories import router as categories_router
from shopfront.db import Database
from shopfront.errors import register_exception_handlers
from shopfront.notifications import BrevoMailer
from shopfront.orders import router as orders_router
from shopfront.payments import StripeGateway
from shopfront.products import router as products_router
from shopfront.responses import send_success
from shopfront.settings import Settings
from shopfront.webhooks import router as webhooks_router

log = logging.getLogger(__name__)

LOCAL_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:3001",
    "http://127.0.0.1:3000",
    "http://localhost:5555",
]


# --- Logging Configuration ---
def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level.upper(),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _is_vercel(url: str) -> bool:
    return "vercel.app" in url or "vercel.com" in url


def cors_options(settings: Settings) -> dict:
    """CORS for the storefront client, any origin in development."""
    origin_regex = None
    if settings.is_development:
        origin_regex = r".*"
    elif _is_vercel(settings.CLIENT_URL):
        origin_regex = r"https://.*\.vercel\.(app|com)"

    return {
        "allow_origins": [settings.CLIENT_URL, *LOCAL_ORIGINS],
        "allow_origin_regex": origin_regex,
        "allow_credentials": True,
        "allow_methods": ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"],
        "allow_headers": [
            "Content-Type",
            "Authorization",
            "X-API-Key",
            "Accept",
            "Origin",
            "X-Requested-With",
            "Stripe-Signature",
        ],
        "expose_headers": ["Content-Type"],
        "max_age": 86400,
    }


def create_app(
    settings: Optional[Settings] = None,
    gateway: Optional[StripeGateway] = None,
    mailer: Optional[BrevoMailer] = None,
    database: Optional[Database] = None,
) -> FastAPI:
    """
    Builds the application.

    Every collaborator is created here from the settings (or passed in) and kept
    on `app.state`; routes reach them through dependencies.
    """
    settings = settings or Settings()
    missing = settings.missing_required()
    if missing:
        raise RuntimeError(
            f"Missing required environment variables: {', '.join(missing)}. "
            "Please check your .env file and ensure all required variables are set."
        )

    database = database or Database(settings.DATABASE_URL)
    gateway = gateway or StripeGateway(
        settings.STRIPE_SECRET_KEY, settings.STRIPE_WEBHOOK_SECRET, settings.STRIPE_CURRENCY
    )
    mailer = mailer or BrevoMailer(settings.BREVO_API_KEY, settings.EMAIL_SENDER, settings.EMAIL_SENDER_NAME)

    if not settings.STRIPE_WEBHOOK_SECRET:
        log.warning("STRIPE_WEBHOOK_SECRET not set. Webhooks will fail.")
    if not settings.BREVO_API_KEY or not settings.EMAIL_SENDER:
        log.warning("BREVO_API_KEY or EMAIL_SENDER not set. Confirmation emails will fail.")
    if not settings.ADMIN_API_KEY:
        log.warning("ADMIN_API_KEY not set. Admin endpoints will refuse every request.")

    # --- Database Startup / Shutdown ---
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await database.create_all()
        yield
        await database.dispose()

    # --- App Initialization ---
    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="Catalog, checkout and Stripe settlement API.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.db = database
    app.state.payment_gateway = gateway
    app.state.mailer = mailer

    app.add_middleware(CORSMiddleware, **cors_options(settings))
    register_exception_handlers(app)

    if settings.is_development:
        @app.middleware("http")
        async def log_requests(request: Request, call_next):
            started = time.perf_counter()
            response = await call_next(request)
            elapsed_ms = (time.perf_counter() - started) * 1000
            log.info(f"{request.method} {request.url.path} {response.status_code} {elapsed_ms:.1f}ms")
            return response

    # --- Routers ---
    api_router = APIRouter()

    @api_router.get("", include_in_schema=False)
    async def health():
        return send_success({"status": "ok"}, "API is working")

    api_router.include_router(products_router)
    api_router.include_router(categories_router)
    api_router.include_router(orders_router)
    api_router.include_router(webhooks_router)
    app.include_router(api_router, prefix=settings.API_PREFIX)

    return app


def run() -> None:
    """Console entry point: serve the API with uvicorn."""
    settings = Settings()
    configure_logging(settings.LOG_LEVEL)
    app = create_app(settings)
    log.info(f"Server ready at: http://{settings.HOST}:{settings.PORT}{settings.API_PREFIX}")
    uvicorn.run(app, host=settings.HOST, port=settings.PORT, log_level=settings.LOG_LEVEL.lower())


if __name__ == "__main__":
    run()

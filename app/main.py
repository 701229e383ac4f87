import logging
from contextlib import asynccontextmanager
from urllib.parse import urlparse

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api import admin, auth, order
from app.config import settings
from app.db_init import init_db, seed_admin_user
from app.models import get_db
from app.models.database import SessionLocal
from app.services.payment_gateways import get_enabled_providers, get_payment_verifiers
from app.services.scheduler import ReconciliationScheduler
from app.webhooks import moneroo_webhook, moneyfusion_webhook

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("app.startup")


def _is_localhost(host: str | None) -> bool:
    return host in {"localhost", "127.0.0.1"}


def _is_http_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in {"http", "https"} and bool(parsed.hostname)


def _get_cors_origins(cors_raw: str) -> list[str]:
    return [origin.strip() for origin in cors_raw.split(",") if origin.strip()]


def _validate_database_url_for_runtime(database_url: str) -> None:
    parsed = urlparse(database_url)
    scheme = parsed.scheme
    db_name = parsed.path.lstrip("/")
    postgres_schemes = {"postgres", "postgresql", "postgresql+psycopg"}

    if not scheme:
        raise RuntimeError("DATABASE_URL is missing URL scheme (expected postgresql:// or postgresql+psycopg://).")
    if scheme == "sqlite":
        return
    if scheme not in postgres_schemes:
        raise RuntimeError(
            f"DATABASE_URL has unsupported scheme '{scheme}' "
            "(expected postgresql:// or postgresql+psycopg://)."
        )
    if not parsed.hostname:
        raise RuntimeError("DATABASE_URL is missing host.")
    if not db_name:
        raise RuntimeError("DATABASE_URL is missing database name in path.")


def _db_url_diagnostics(database_url: str) -> str:
    parsed = urlparse(database_url)
    host = parsed.hostname or "<missing>"
    port = parsed.port or "<missing>"
    db_name = parsed.path.lstrip("/") or "<missing>"
    scheme = parsed.scheme or "<missing>"
    return f"scheme={scheme}, host={host}, port={port}, database={db_name}"


def _validate_required_env_for_runtime() -> None:
    errors = []
    warnings = []

    if not settings.JWT_SECRET.strip():
        errors.append("JWT_SECRET is required.")

    if not _is_http_url(settings.BASE_URL):
        errors.append("BASE_URL must be an absolute http(s) URL, e.g. https://api.example.com")

    origins = _get_cors_origins(settings.CORS_ORIGINS)
    if not origins:
        errors.append("CORS_ORIGINS must contain at least one comma-separated origin URL.")
    else:
        invalid_origins = [origin for origin in origins if not _is_http_url(origin)]
        if invalid_origins:
            errors.append(f"CORS_ORIGINS contains invalid URL(s): {', '.join(invalid_origins)}")

    if not _is_http_url(settings.MONEROO_RETURN_URL):
        errors.append("MONEROO_RETURN_URL must be an absolute http(s) URL.")
    if settings.GATEWAY_TIMEOUT_SECONDS <= 0:
        errors.append("GATEWAY_TIMEOUT_SECONDS must be positive.")
    if settings.RECONCILE_INTERVAL_SECONDS < 0:
        errors.append("RECONCILE_INTERVAL_SECONDS must be zero (disabled) or positive.")

    if not get_enabled_providers():
        warnings.append("No payment gateway is configured; checkout and reconciliation are unavailable.")
    if settings.MONEROO_API_KEY and not settings.MONEROO_WEBHOOK_SECRET:
        warnings.append("MONEROO_WEBHOOK_SECRET is not set; Moneroo webhooks will not be verified.")
    if settings.MONEYFUSION_API_URL and not settings.MONEYFUSION_WEBHOOK_SECRET:
        warnings.append("MONEYFUSION_WEBHOOK_SECRET is not set; MoneyFusion webhooks will not be verified.")
    if _is_localhost(urlparse(settings.BASE_URL).hostname) and settings.MONEROO_API_KEY:
        warnings.append("BASE_URL points to localhost; Moneroo cannot reach the webhook endpoint.")

    if warnings:
        logger.warning("Startup environment warnings: %s", " | ".join(warnings))

    if errors:
        raise RuntimeError("Startup environment validation failed: " + " | ".join(errors))


@asynccontextmanager
async def lifespan(app: FastAPI):
    database_url = "<unavailable>"
    logger.info("Application startup initiated.")
    try:
        database_url = settings.DATABASE_URL
        logger.info("DATABASE_URL diagnostics at startup: %s", _db_url_diagnostics(database_url))
        _validate_database_url_for_runtime(database_url)
        _validate_required_env_for_runtime()
        init_db()
    except Exception as exc:
        diagnostics = (
            _db_url_diagnostics(database_url)
            if database_url != "<unavailable>"
            else "DATABASE_URL unavailable (missing or unreadable)."
        )
        logger.exception(
            "Database initialization failed: %s. DATABASE_URL diagnostics: %s",
            str(exc),
            diagnostics,
        )
        raise
    db = next(get_db())
    try:
        seed_admin_user(db)
    finally:
        db.close()

    scheduler = None
    if settings.RECONCILE_INTERVAL_SECONDS > 0:
        scheduler = ReconciliationScheduler(
            session_factory=SessionLocal,
            verifiers_factory=get_payment_verifiers,
            interval_seconds=settings.RECONCILE_INTERVAL_SECONDS,
        )
        scheduler.start()
    app.state.reconciliation_scheduler = scheduler
    logger.info("Application startup completed successfully.")
    yield
    if scheduler is not None:
        await scheduler.stop()


app = FastAPI(
    title="Marketplace Payments API",
    description=(
        "Order checkout, payment reconciliation and admin overrides for a multi-vendor marketplace "
        "(Moneroo/MoneyFusion). Use **Authorize** with the token from `POST /api/auth/login`."
    ),
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Auth", "description": "Login (JWT) and current user."},
        {"name": "Orders", "description": "Checkout and order tracking (requires auth)."},
        {"name": "Admin", "description": "Reconciliation, auto-processing, overrides and monitoring (admin only)."},
        {"name": "Webhooks", "description": "Called by Moneroo and MoneyFusion."},
    ],
)


def custom_openapi():
    if app.openapi_schema:
        return app.openapi_schema
    from fastapi.openapi.utils import get_openapi

    openapi_schema = get_openapi(
        title=app.title,
        version=app.version,
        description=app.description,
        routes=app.routes,
    )
    openapi_schema.setdefault("components", {})["securitySchemes"] = {
        **openapi_schema.get("components", {}).get("securitySchemes", {}),
        "bearerAuth": {
            "type": "http",
            "scheme": "bearer",
            "bearerFormat": "JWT",
            "description": "JWT from POST /api/auth/login",
        },
    }
    app.openapi_schema = openapi_schema
    return app.openapi_schema


app.openapi = custom_openapi

app.add_middleware(
    CORSMiddleware,
    allow_origins=_get_cors_origins(settings.CORS_ORIGINS),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(auth.router, prefix="/api/auth", tags=["Auth"])
app.include_router(order.router, prefix="/api/orders", tags=["Orders"])
app.include_router(admin.router, prefix="/api/admin", tags=["Admin"])
app.include_router(moneroo_webhook.router, prefix="/webhooks", tags=["Webhooks"])
app.include_router(moneyfusion_webhook.router, prefix="/webhooks", tags=["Webhooks"])


@app.get("/")
def root():
    return {"status": "ok", "service": "Marketplace Payments API"}


@app.get("/health")
def health():
    return {"status": "ok"}

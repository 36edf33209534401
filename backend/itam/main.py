import uuid
from contextlib import asynccontextmanager
from time import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import func, select
from starlette.middleware.sessions import SessionMiddleware

from itam import config, crud
from itam.db import SessionLocal
from itam.errors import error_body, setup_exception_handlers
from itam.logging_config import LogContext, configure_logging, get_logger
from itam.models import User, UserRole
from itam.routers.auth import router as auth_router
from itam.routers.assets import router as assets_router
from itam.routers.holding_assets import router as holding_assets_router
from itam.routers.imports import router as imports_router
from itam.routers.users import router as users_router
from itam.routers.locations import router as locations_router
from itam.routers.departments import router as departments_router
from itam.routers.search import router as search_router
from itam.routers.dashboard import router as dashboard_router
from itam.routers.reports import router as reports_router
from itam.routers.settings import router as settings_router

logger = get_logger(__name__)


def seed_defaults():
    """Make sure the settings row, the import fallback location and a first admin exist."""
    db = SessionLocal()
    try:
        crud.get_settings(db)
        crud.ensure_fallback_location(db)

        user_count = db.scalar(select(func.count()).select_from(User)) or 0
        if user_count == 0:
            admin = User(
                name=config.ADMIN_NAME,
                email=config.ADMIN_EMAIL,
                employee_id=crud.generate_next_employee_id(db),
                role=UserRole.ADMIN,
                is_active=True,
            )
            db.add(admin)
            db.commit()
            logger.warning(
                "FIRST RUN: default admin account created; sign in with the identity provider using this email",
                extra={"email": config.ADMIN_EMAIL},
            )
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(level=config.LOG_LEVEL, fmt=config.LOG_FORMAT)
    seed_defaults()
    yield


app = FastAPI(title="IT Asset Tracker API", lifespan=lifespan)
setup_exception_handlers(app)

_rate_limit_store: dict[str, tuple[int, float]] = {}
_last_prune = 0.0


def prune_rate_limit_store(now: float) -> None:
    """Drop clients whose window has already closed."""
    window = config.RATE_LIMIT_WINDOW_SECONDS
    for ip in [ip for ip, (_, start) in _rate_limit_store.items() if now - start >= window]:
        del _rate_limit_store[ip]


@app.middleware("http")
async def rate_limit_middleware(request: Request, call_next):
    global _last_prune
    # Skip health checks
    if request.url.path == "/health":
        return await call_next(request)

    client_ip = request.client.host if request.client else "unknown"
    now = time()

    if now - _last_prune >= config.RATE_LIMIT_WINDOW_SECONDS:
        prune_rate_limit_store(now)
        _last_prune = now

    count, window_start = _rate_limit_store.get(client_ip, (0, now))
    if now - window_start >= config.RATE_LIMIT_WINDOW_SECONDS:
        count = 0
        window_start = now

    count += 1
    _rate_limit_store[client_ip] = (count, window_start)

    if count > config.RATE_LIMIT_REQUESTS:
        logger.warning("Rate limit exceeded", extra={"client_ip": client_ip})
        return JSONResponse(status_code=429, content=error_body("Rate limit exceeded. Please slow down."))

    return await call_next(request)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    LogContext.clear()
    LogContext.set(request_id=request_id)
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


app.add_middleware(SessionMiddleware, secret_key=config.SESSION_SECRET)
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
def health():
    return {"ok": True}


app.include_router(auth_router)
app.include_router(assets_router)
app.include_router(holding_assets_router)
app.include_router(imports_router)
app.include_router(users_router)
app.include_router(locations_router)
app.include_router(departments_router)
app.include_router(search_router)
app.include_router(dashboard_router)
app.include_router(reports_router)
app.include_router(settings_router)

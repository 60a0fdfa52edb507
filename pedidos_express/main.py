import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from pedidos_express.core.config import CORS_ALLOW_ORIGIN_REGEX, CORS_ORIGINS, DATABASE_URL
from pedidos_express.core.database import Base, SessionLocal, engine
from pedidos_express.core.logging_setup import configure_logging
from pedidos_express.core.startup_checks import (
    ensure_migrations_applied,
    validate_database_environment,
    validate_runtime_config,
)
from pedidos_express.middleware.observability import ObservabilityMiddleware
import pedidos_express.models  # garante que os models são importados antes do create_all

from pedidos_express.models.user import User
from pedidos_express.services.passwords import hash_password
from pedidos_express.routers.auth import router as auth_router
from pedidos_express.routers.order_stream import router as order_stream_router
from pedidos_express.routers.orders import router as orders_router
from pedidos_express.routers.message_usage import router as message_usage_router
from pedidos_express.routers.internal_metrics import router as internal_metrics_router

configure_logging()

logger = logging.getLogger(__name__)
BOOTSTRAP_PREFIX = "[MASTER_BOOTSTRAP]"
DEFAULT_MASTER_NAME = "Master"
REPO_ROOT = Path(__file__).resolve().parents[1]
ALEMBIC_CONFIG_PATH = Path(
    os.getenv("ALEMBIC_CONFIG", str(REPO_ROOT / "alembic.ini"))
)


@asynccontextmanager
async def lifespan(_: FastAPI):
    _startup_tasks()
    yield


app = FastAPI(
    title="Pedidos Express API",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_origin_regex=CORS_ALLOW_ORIGIN_REGEX,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(ObservabilityMiddleware)


def _bootstrap_master_user() -> None:
    master_password = os.getenv("DEV_MASTER_PASSWORD", "").strip()
    if not master_password:
        logger.info("%s skipped: configure DEV_MASTER_PASSWORD.", BOOTSTRAP_PREFIX)
        return

    master_username = os.getenv("DEV_MASTER_USERNAME", "admin").strip() or "admin"

    db = SessionLocal()
    try:
        existing = (
            db.query(User)
            .filter(User.tenant_id.is_(None), User.username == master_username)
            .first()
        )
        if existing:
            logger.info("%s exists id=%s username=%s", BOOTSTRAP_PREFIX, existing.id, existing.username)
            return

        master = User(
            tenant_id=None,
            username=master_username,
            password_hash=hash_password(master_password),
            name=DEFAULT_MASTER_NAME,
            role="master",
            is_active=True,
        )
        db.add(master)
        db.commit()
        db.refresh(master)
        logger.info("%s created id=%s username=%s", BOOTSTRAP_PREFIX, master.id, master.username)
    except Exception:
        db.rollback()
        logger.exception("%s ERROR bootstrap failed", BOOTSTRAP_PREFIX)
        raise
    finally:
        db.close()


def _startup_tasks() -> None:
    try:
        validate_database_environment()
        validate_runtime_config()
        if DATABASE_URL.startswith("sqlite"):
            # dev local: schema direto dos models
            Base.metadata.create_all(bind=engine)
        else:
            ensure_migrations_applied(engine=engine, alembic_config_path=ALEMBIC_CONFIG_PATH)
        _bootstrap_master_user()
    except Exception:
        logger.exception("[STARTUP] ERROR startup failed")
        raise


# Routers (stream antes de /orders/{order_id})
app.include_router(auth_router)
app.include_router(order_stream_router)
app.include_router(orders_router)
app.include_router(message_usage_router)
app.include_router(internal_metrics_router)


@app.get("/")
def root():
    return {"status": "ok"}


@app.get("/health")
def health():
    return {"status": "healthy"}

import os

# Precisa vir antes de qualquer import de pedidos_express (config lê o ambiente no import)
os.environ.setdefault("SESSION_SECRET", "test-session-secret")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("INTERNAL_API_TOKEN", "internal-test-token")
os.environ.setdefault("WHATSAPP_PROVIDER", "mock")
os.environ.setdefault("SESSION_COOKIE_SECURE", "0")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from pedidos_express.core.database import Base
from pedidos_express.core.metrics import request_metrics
import pedidos_express.models  # noqa: F401


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def _reset_metrics():
    request_metrics.reset()
    yield
    request_metrics.reset()

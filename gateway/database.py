from datetime import datetime, timezone

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from gateway.core.config import Settings

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp, the representation stored in every DateTime column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def build_engine(settings: Settings) -> Engine:
    connect_args = {}
    if settings.DATABASE_URL.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "timeout": 10}
    else:
        connect_args = {"connect_timeout": 10}
    return create_engine(settings.DATABASE_URL, pool_pre_ping=True, connect_args=connect_args)


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=engine,
    )


def init_schema(engine: Engine) -> None:
    # Model modules register their tables on Base when imported.
    from gateway.models import login_log, refresh_token, user  # noqa: F401

    Base.metadata.create_all(bind=engine)


def get_db(request: Request):
    """Yield a session from the factory ``create_app`` attached to the application."""
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()

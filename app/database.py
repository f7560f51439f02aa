"""Engine, session factory and migrations for the coach database."""
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from app.config import get_settings


PROJECT_ROOT = Path(__file__).resolve().parent.parent


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """Create the engine; SQLite files get their directory created and FKs enforced."""

    connect_args = {}
    if database_url.startswith("sqlite"):
        # sessions are used from FastAPI's threadpool and from asyncio.to_thread
        connect_args["check_same_thread"] = False
        if database_url.startswith("sqlite:///") and database_url != "sqlite:///:memory:":
            Path(database_url.removeprefix("sqlite:///")).parent.mkdir(parents=True, exist_ok=True)

    built = create_engine(database_url, echo=echo, future=True, connect_args=connect_args)
    if built.dialect.name == "sqlite":
        event.listen(built, "connect", _enable_sqlite_foreign_keys)
    return built


def _enable_sqlite_foreign_keys(dbapi_conn, connection_record):
    # user deletes cascade to activities, readings, profile and workouts
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


settings = get_settings()
engine = build_engine(settings.database_url, echo=settings.debug)


class Base(DeclarativeBase):
    """Declarative base for SQLAlchemy models."""


SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


def get_db():
    """FastAPI dependency yielding a session that commits when the request succeeds."""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def alembic_config(database_url: str | None = None) -> Config:
    cfg = Config(str(PROJECT_ROOT / "alembic.ini"))
    # app logging is already installed by configure_logging
    cfg.attributes["configure_logger"] = False
    cfg.set_main_option("script_location", str(PROJECT_ROOT / "migrations"))
    cfg.set_main_option("sqlalchemy.url", database_url or settings.database_url)
    return cfg


def run_migrations(target_revision: str = "head", database_url: str | None = None) -> None:
    """Upgrade the schema to ``target_revision`` (used by the CLI before syncing)."""

    command.upgrade(alembic_config(database_url), target_revision)

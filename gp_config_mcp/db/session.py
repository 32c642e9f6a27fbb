import os
import re
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from gp_config_mcp.errors import DbError


def normalize_database_url(raw_url: str) -> str:
    cleaned = re.sub(r"\s+", "", (raw_url or "").strip())
    if cleaned.startswith("postgres://"):
        cleaned = "postgresql://" + cleaned[len("postgres://") :]
    return cleaned


def _needs_ssl(url: str) -> bool:
    return ".rds.amazonaws.com" in url or ".aws.neon.tech" in url


def build_engine(database_url: str) -> Engine:
    url = normalize_database_url(database_url)
    engine_kwargs = {
        "pool_pre_ping": True,
    }

    if url.startswith("postgresql"):
        engine_kwargs.update(
            {
                "pool_recycle": int(os.getenv("DB_POOL_RECYCLE", "1800")),
                "pool_size": int(os.getenv("DB_POOL_SIZE", "2")),
                "max_overflow": int(os.getenv("DB_MAX_OVERFLOW", "0")),
            }
        )

        if _needs_ssl(url) and "sslmode=" not in url:
            engine_kwargs["connect_args"] = {"sslmode": "require"}

    try:
        return create_engine(url, **engine_kwargs)
    except (SQLAlchemyError, ValueError) as exc:
        raise DbError(f"Invalid database URL: {exc}") from exc


@contextmanager
def transaction(engine: Engine) -> Iterator[Session]:
    """Yield a session inside one transaction; commit on success, roll back on error."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = SessionLocal()
    try:
        with db.begin():
            yield db
    except SQLAlchemyError as exc:
        raise DbError(str(exc.orig if getattr(exc, "orig", None) is not None else exc)) from exc
    finally:
        db.close()

"""
Engine and session plumbing.

Requests get one session on `g`, closed at teardown; views commit explicitly.
Scripts and tests use `session_scope`, which commits on success. Document
writes are compare-and-set on `version`, so a scope that loses that race
rolls back everything it wrote.
"""
from __future__ import annotations

import logging
from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

from flask import Flask, current_app, g
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from app.doctrack.modules.routing.errors import StaleDocument

logger = logging.getLogger(__name__)


def engine_options(db_url: str) -> dict[str, Any]:
    """create_engine kwargs for the app and the release scripts."""
    opts: dict[str, Any] = {"pool_pre_ping": True}
    if db_url.startswith("postgres"):
        opts.update(pool_recycle=1800, pool_size=5, max_overflow=10, pool_timeout=30)
    elif db_url.startswith("sqlite"):
        # gunicorn threads and the test client share one file-backed engine.
        opts["connect_args"] = {"check_same_thread": False}
    return opts


def make_sessionmaker(engine: Engine) -> sessionmaker[Session]:
    # Documents are handed back as frozen values after commit; no lazy reloads.
    return sessionmaker(bind=engine, class_=Session, autoflush=False, expire_on_commit=False)


def init_db(app: Flask) -> None:
    db_url = app.config["DATABASE_URL"]
    engine = create_engine(db_url, **engine_options(db_url))
    app.extensions["sqlalchemy_engine"] = engine
    app.extensions["sqlalchemy_sessionmaker"] = make_sessionmaker(engine)
    logger.debug("Database engine ready: dialect=%s", engine.dialect.name)


def db_session() -> Session:
    """Request-scoped session, created on first use."""
    s: Session | None = getattr(g, "db_session", None)
    if s is None:
        s = current_app.extensions["sqlalchemy_sessionmaker"]()
        g.db_session = s
    return s


def teardown_db_session(_exc: BaseException | None) -> None:
    s: Session | None = g.pop("db_session", None)
    if s is not None:
        s.close()


@contextmanager
def session_scope(app: Flask) -> Generator[Session, None, None]:
    """Session outside a request: commit on success, roll back on any error."""
    s: Session = app.extensions["sqlalchemy_sessionmaker"]()
    try:
        yield s
        s.commit()
    except StaleDocument as e:
        s.rollback()
        logger.warning("Rolled back scope after concurrent document write: %s", e)
        raise
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()

from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session

from app.doctrack.db import engine_options, make_sessionmaker


def create_script_engine(db_url: str) -> Engine:
    return create_engine(db_url, **engine_options(db_url))


@contextmanager
def script_session(db_url: str) -> Generator[Session, None, None]:
    """One-shot session for release tasks; the engine is disposed on exit."""
    engine = create_script_engine(db_url)
    s = make_sessionmaker(engine)()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
        engine.dispose()

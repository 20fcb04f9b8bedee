"""
Session scopes for LinearVue.

``session`` is the write boundary: channel edits, library upserts and block
replacement commit through it, so a channel's block set changes all at once
or not at all. ``read_session`` serves the scheduler's read paths and never
commits.
"""

from __future__ import annotations

import contextlib
from collections.abc import Callable, Generator

from sqlalchemy.orm import Session

from . import db as _db

SessionFactory = Callable[[], Session]


def _open(factory: SessionFactory | None) -> Session:
    # Resolved per call so tests can repoint SessionLocal.
    return (factory or _db.SessionLocal)()


@contextlib.contextmanager
def session(factory: SessionFactory | None = None) -> Generator[Session, None, None]:
    """Transactional scope: commit on success, roll back and re-raise on error."""
    db = _open(factory)
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@contextlib.contextmanager
def read_session(factory: SessionFactory | None = None) -> Generator[Session, None, None]:
    """Read-only scope. The transaction is always rolled back."""
    db = _open(factory)
    try:
        yield db
    finally:
        db.rollback()
        db.close()

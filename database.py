"""
database.py — SQLAlchemy models, session management and the Analysis store.

Uses PostgreSQL in production (via DATABASE_URL env var).
Falls back to SQLite locally so you can develop without Postgres.
"""

import json
import logging
import os
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from errors import StorageError

logger = logging.getLogger("seo-suggest")

# ---------------------------------------------------------------------------
# Connection
# ---------------------------------------------------------------------------

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./seo_suggest.db")

# Some hosts expose postgres:// but SQLAlchemy requires postgresql://
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)

engine = create_engine(
    DATABASE_URL,
    # SQLite needs this flag; ignored by Postgres
    connect_args={"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {},
    pool_pre_ping=True,   # drop stale connections before use
)

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)

# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------

class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"

    id               = Column(Integer, primary_key=True, autoincrement=True)
    email            = Column(String(255), nullable=False, unique=True, index=True)
    hashed_password  = Column(String, nullable=False)
    created_at       = Column(DateTime, default=datetime.utcnow)


class Analysis(Base):
    __tablename__ = "analyses"

    id               = Column(Integer, primary_key=True, autoincrement=True)
    user_id          = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    url              = Column(String(2048), nullable=False)
    raw_html         = Column(Text, nullable=True)
    # JSON stored as text; avoids a JSON column type that behaves
    # differently across SQLite and Postgres.
    extracted_tags   = Column(Text, nullable=False, default="{}")
    ai_suggestions   = Column(Text, nullable=False, default="{}")
    created_at       = Column(DateTime, default=datetime.utcnow, index=True)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def init_db(bind=None) -> None:
    """Create all tables. Safe to call on every startup."""
    Base.metadata.create_all(bind=bind or engine)


def get_db():
    """Yield a session and ensure it's closed afterwards."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _dumps(value) -> str:
    return json.dumps(value, default=str)


def _loads(text: Optional[str]) -> dict:
    if not text:
        return {}
    return json.loads(text)


def _to_record(row: Analysis) -> dict:
    """Full Analysis record in the shape the API returns."""
    return {
        "id": row.id,
        "url": row.url,
        "rawHtml": row.raw_html,
        "extractedTags": _loads(row.extracted_tags),
        "aiSuggestions": _loads(row.ai_suggestions),
        "createdAt": row.created_at.isoformat() if row.created_at else None,
        "userId": row.user_id,
    }


# ---------------------------------------------------------------------------
# Analysis store
# ---------------------------------------------------------------------------

class AnalysisStore:
    """
    Create / read / update / delete Analysis rows.

    Every method opens its own short-lived session from the injected factory and
    returns plain dicts, so callers never hold detached ORM objects. Owner-scoped
    methods filter on user_id in the query itself.
    """

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self._session_factory = session_factory

    def _fail(self, action: str, e: Exception):
        logger.error(f"Analysis store {action} failed: {type(e).__name__}: {e}", exc_info=True)
        raise StorageError() from e

    def create(self, user_id: int, url: str, raw_html: Optional[str], extracted_tags: dict) -> dict:
        db = self._session_factory()
        try:
            row = Analysis(
                user_id=user_id,
                url=url,
                # PostgreSQL rejects \x00 in text columns
                raw_html=raw_html.replace("\x00", "") if raw_html else raw_html,
                extracted_tags=_dumps(extracted_tags),
                ai_suggestions=_dumps({}),
            )
            db.add(row)
            db.commit()
            db.refresh(row)
            logger.info(f"[analysis {row.id}] Saved to database (user={user_id})")
            return _to_record(row)
        except SQLAlchemyError as e:
            db.rollback()
            self._fail("create", e)
        finally:
            db.close()

    def get(self, analysis_id: int) -> Optional[dict]:
        """Unscoped lookup by id. Callers must check userId themselves."""
        db = self._session_factory()
        try:
            row = db.query(Analysis).filter(Analysis.id == analysis_id).first()
            return _to_record(row) if row else None
        except SQLAlchemyError as e:
            self._fail("get", e)
        finally:
            db.close()

    def get_for_user(self, analysis_id: int, user_id: int) -> Optional[dict]:
        db = self._session_factory()
        try:
            row = db.query(Analysis).filter(
                Analysis.id == analysis_id,
                Analysis.user_id == user_id,
            ).first()
            return _to_record(row) if row else None
        except SQLAlchemyError as e:
            self._fail("get_for_user", e)
        finally:
            db.close()

    def list_for_user(self, user_id: int, limit: Optional[int] = None, offset: int = 0) -> list[dict]:
        """History summaries, newest first. No raw HTML and no suggestions."""
        db = self._session_factory()
        try:
            query = (
                db.query(Analysis.id, Analysis.url, Analysis.created_at, Analysis.extracted_tags)
                .filter(Analysis.user_id == user_id)
                .order_by(Analysis.created_at.desc(), Analysis.id.desc())
                .offset(offset)
            )
            if limit is not None:
                query = query.limit(min(limit, 100))
            return [
                {
                    "id": r.id,
                    "url": r.url,
                    "createdAt": r.created_at.isoformat() if r.created_at else None,
                    "extractedTags": _loads(r.extracted_tags),
                }
                for r in query.all()
            ]
        except SQLAlchemyError as e:
            self._fail("list_for_user", e)
        finally:
            db.close()

    def set_suggestions(self, analysis_id: int, user_id: int, suggestions: dict) -> Optional[dict]:
        """Replace aiSuggestions wholesale. Returns None if the row is gone or not owned."""
        db = self._session_factory()
        try:
            row = db.query(Analysis).filter(
                Analysis.id == analysis_id,
                Analysis.user_id == user_id,
            ).first()
            if not row:
                return None
            row.ai_suggestions = _dumps(suggestions)
            db.commit()
            db.refresh(row)
            return _to_record(row)
        except SQLAlchemyError as e:
            db.rollback()
            self._fail("set_suggestions", e)
        finally:
            db.close()

    def delete_for_user(self, analysis_id: int, user_id: int) -> Optional[dict]:
        """Delete an owned row. Returns {id, url} of the deleted row, or None."""
        db = self._session_factory()
        try:
            row = db.query(Analysis).filter(
                Analysis.id == analysis_id,
                Analysis.user_id == user_id,
            ).first()
            if not row:
                return None
            deleted = {"id": row.id, "url": row.url}
            db.delete(row)
            db.commit()
            logger.info(f"[analysis {analysis_id}] Deleted (user={user_id})")
            return deleted
        except SQLAlchemyError as e:
            db.rollback()
            self._fail("delete_for_user", e)
        finally:
            db.close()

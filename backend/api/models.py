"""
Database models for the Medical Device Navigator API.

Stores issued access codes, processed Stripe webhook events and user
feedback.  Nomenclature data itself is served from chunked JSON files,
not from the database.
"""

import os
import uuid
from datetime import datetime

from sqlalchemy import create_engine, Column, Integer, String, Text, DateTime, Index
from sqlalchemy.orm import declarative_base, sessionmaker

from api.config import DEFAULT_DATABASE_URL

Base = declarative_base()

_engine = None
_Session = sessionmaker()


# ─── Models ───────────────────────────────────────────────────────────────────

class IssuedAccessCode(Base):
    """An access code handed to a paying customer."""
    __tablename__ = "issued_access_codes"

    code = Column(String(12), primary_key=True)            # cleaned, no hyphens
    stripe_session_id = Column(String(255), nullable=False)
    email = Column(String(320), default="")
    scheme = Column(Integer, default=1)                    # code format version
    issued_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            "code": self.code,
            "stripeSessionId": self.stripe_session_id,
            "email": self.email,
            "scheme": self.scheme,
            "issuedAt": self.issued_at.isoformat() if self.issued_at else None,
            "expiresAt": self.expires_at.isoformat() if self.expires_at else None,
        }


class StripeEvent(Base):
    """Webhook events already handled, keyed by Stripe's event id."""
    __tablename__ = "stripe_events"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    stripe_event_id = Column(String(255), unique=True, nullable=False)
    event_type = Column(String(100), nullable=False)
    processed_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Feedback(Base):
    """Error reports and mapping suggestions submitted by users."""
    __tablename__ = "feedback"

    id = Column(Integer, primary_key=True, autoincrement=True)
    type = Column(String(30), nullable=False)              # error_report, mapping_suggestion
    message = Column(Text, nullable=False)
    email = Column(String(320), default="anonymous")
    gmdn_code = Column(String(30), nullable=True)
    emdn_code = Column(String(30), nullable=True)
    user_agent = Column(String(500), nullable=True)
    ip = Column(String(64), nullable=True)
    status = Column(String(20), default="pending")         # pending, reviewed, closed
    created_at = Column(DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "type": self.type,
            "message": self.message,
            "email": self.email,
            "gmdnCode": self.gmdn_code,
            "emdnCode": self.emdn_code,
            "status": self.status,
            "timestamp": self.created_at.isoformat() if self.created_at else None,
        }


# ─── Indexes ──────────────────────────────────────────────────────────────────

Index("idx_issued_session", IssuedAccessCode.stripe_session_id)
Index("idx_feedback_status", Feedback.status)


# ─── Database Initialization ─────────────────────────────────────────────────

def get_engine(database_url: str | None = None):
    """Create and return a SQLAlchemy engine."""
    url = database_url or DEFAULT_DATABASE_URL
    if url.startswith("sqlite:///") and url != "sqlite:///:memory:":
        db_dir = os.path.dirname(url[len("sqlite:///"):])
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)
    return create_engine(url, echo=False)


def init_db(database_url: str | None = None):
    """Create all tables and bind the session factory to the engine."""
    global _engine
    _engine = get_engine(database_url)
    Base.metadata.create_all(_engine)
    _Session.configure(bind=_engine)
    return _engine


def get_session():
    """Create and return a new database session."""
    if _engine is None:
        init_db()
    return _Session()

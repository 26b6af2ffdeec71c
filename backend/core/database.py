"""
Database configuration and connection management.

This module provides:
- SQLAlchemy Core table definitions
- A Database handle with an explicit connect/close lifecycle
- Connection pooling with sane defaults
- Test database support (in-memory SQLite)
"""
from typing import Optional, Iterator
from contextlib import contextmanager
from sqlalchemy import (
    create_engine,
    MetaData,
    Table,
    Column,
    Integer,
    String,
    DateTime,
    Boolean,
    Text,
    Index,
    ForeignKey,
    UniqueConstraint,
    text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.pool import QueuePool, StaticPool
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.sql import func
import logging
import os

from backend.core.config import settings
from backend.core.errors import StoreUnavailableError
from backend.core.logging import LOGGER_NAME


logger = logging.getLogger(LOGGER_NAME)

# SQLAlchemy metadata for table definitions
metadata = MetaData()

# Connection pooling configuration
POOL_SIZE = 10
MAX_OVERFLOW = 20
POOL_TIMEOUT = 30
POOL_RECYCLE = 3600  # Recycle connections after 1 hour

IN_MEMORY_URL = "sqlite+pysqlite:///:memory:"


def get_database_url() -> Optional[str]:
    """
    Get the database URL from settings or environment.

    For testing, use TEST_DATABASE_URL if available.
    """
    test_url = os.getenv("TEST_DATABASE_URL")
    if test_url:
        return test_url

    return settings.DATABASE_URL


class Database:
    """
    Store handle passed into every service.

    Usage:
        db = Database(url)
        db.connect()
        with db.session() as session:
            session.execute(...)
        db.close()
    """

    def __init__(self, url: Optional[str] = None, *, echo: bool = False):
        self.url = url or get_database_url()
        self.echo = echo
        self._engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker] = None

    @property
    def connected(self) -> bool:
        return self._engine is not None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise StoreUnavailableError("Database is not connected")
        return self._engine

    def connect(self) -> Engine:
        """Create the engine and session factory. Idempotent."""
        if self._engine is not None:
            return self._engine

        if not self.url:
            raise ValueError(
                "DATABASE_URL is not configured. "
                "Set DATABASE_URL in environment or .env file."
            )

        if self.url.startswith("sqlite"):
            # Single shared connection so an in-memory database survives across threads
            self._engine = create_engine(
                self.url,
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
                echo=self.echo,
            )
        else:
            self._engine = create_engine(
                self.url,
                poolclass=QueuePool,
                pool_size=POOL_SIZE,
                max_overflow=MAX_OVERFLOW,
                pool_timeout=POOL_TIMEOUT,
                pool_recycle=POOL_RECYCLE,
                pool_pre_ping=True,
                echo=self.echo,
            )

        self._session_factory = sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=self._engine,
        )
        logger.info("database.connected", extra={"dialect": self._engine.dialect.name})
        return self._engine

    def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            logger.info("database.closed")
        self._engine = None
        self._session_factory = None

    @contextmanager
    def session(self, existing: Optional[Session] = None) -> Iterator[Session]:
        """
        Transactional scope: commit on success, rollback on error.

        When `existing` is given, join that session's transaction instead of
        opening a new one; the outer scope owns commit/rollback.
        """
        if existing is not None:
            yield existing
            return

        if self._session_factory is None:
            raise StoreUnavailableError("Database is not connected")

        session = self._session_factory()
        try:
            yield session
            session.commit()
        except OperationalError as exc:
            session.rollback()
            logger.error("database.unavailable", extra={"error": str(exc.orig) if exc.orig else str(exc)})
            raise StoreUnavailableError("Database unavailable") from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def create_all(self) -> None:
        """
        Create all tables defined in metadata.

        This is idempotent - tables that already exist will not be recreated.
        """
        metadata.create_all(bind=self.engine)

    def drop_all(self) -> None:
        """
        Drop all tables defined in metadata.

        WARNING: This is destructive! Only use in tests or development.
        """
        metadata.drop_all(bind=self.engine)

    def check_connection(self) -> bool:
        """
        Check if database connection is available.

        Returns:
            True if connection successful, False otherwise
        """
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.warning(f"Database connection check failed: {e}")
            return False


# Users (identity from the auth provider + subscription state)
users = Table(
    'users',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('open_id', String(64), nullable=False, unique=True),
    Column('name', Text, nullable=True),
    Column('email', String(320), nullable=True),
    Column('login_method', String(64), nullable=True),
    Column('role', String(20), nullable=False, server_default='user'),
    Column('subscription_tier', String(20), nullable=False, server_default='free'),
    Column('stripe_customer_id', String(255), nullable=True),
    Column('stripe_subscription_id', String(255), nullable=True),
    Column('subscription_status', String(50), nullable=False, server_default='active'),
    Column('subscription_ends_at', DateTime(timezone=True), nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False),
    Column('last_signed_in', DateTime(timezone=True), server_default=func.now(), nullable=False),
    # Webhook subscription updates are keyed by the external customer id
    Index('idx_users_stripe_customer_id', 'stripe_customer_id'),
)

# Conversations
conversations = Table(
    'conversations',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('user_id', Integer, ForeignKey('users.id'), nullable=False),
    Column('title', String(255), nullable=False),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    # Composite index for list pattern: (user_id, updated_at)
    Index('idx_conversations_user_updated', 'user_id', 'updated_at'),
)

# Messages
messages = Table(
    'messages',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('conversation_id', Integer, ForeignKey('conversations.id', ondelete='CASCADE'), nullable=False),
    Column('role', String(20), nullable=False),  # 'user', 'assistant'
    Column('content', Text, nullable=False),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    # Transcript ordering: (conversation_id, created_at, id)
    Index('idx_messages_conversation_created', 'conversation_id', 'created_at', 'id'),
)

# Uploaded audio files
audio_files = Table(
    'audio_files',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('user_id', Integer, ForeignKey('users.id'), nullable=False),
    Column('conversation_id', Integer, ForeignKey('conversations.id', ondelete='SET NULL'), nullable=True),
    Column('file_name', String(255), nullable=False),
    Column('file_key', String(512), nullable=False, unique=True),
    Column('url', Text, nullable=False),
    Column('mime_type', String(100), nullable=False),
    Column('size', Integer, nullable=False),
    Column('is_reference', Boolean, nullable=False, server_default='0'),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Index('idx_audio_files_user_created', 'user_id', 'created_at'),
)

# Usage ledger (append-only, one row per billable event)
usage_tracking = Table(
    'usage_tracking',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('user_id', Integer, ForeignKey('users.id'), nullable=False),
    Column('usage_type', String(50), nullable=False),  # audioAnalysis, midiGeneration, stemSeparation
    Column('month', String(7), nullable=False),  # "YYYY-MM"
    Column('cost', Integer, nullable=False, server_default='0'),  # cents
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    # Equality lookups: (user_id, usage_type, month)
    Index('idx_usage_tracking_user_type_month', 'user_id', 'usage_type', 'month'),
)

# Billing events (webhook idempotency)
billing_events = Table(
    'billing_events',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('stripe_event_id', String(100), nullable=False),
    Column('event_type', String(100), nullable=False),
    Column('received_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column('payload_hash', String(64), nullable=False),  # SHA256 hash of the raw body
    Column('processed', Boolean, nullable=False, server_default='0'),
    Column('processed_at', DateTime(timezone=True), nullable=True),
    Column('error', Text, nullable=True),
    UniqueConstraint('stripe_event_id', name='uq_billing_events_stripe_id'),
    Index('idx_billing_events_received_at', 'received_at'),
)

"""
Collection Store.

A small key-value persistence layer: each named collection (funds,
cashflows, generalFunds, ...) is stored for a user as one JSON list of record
dictionaries. Writes replace the whole collection.

SQLite is the default backend; any SQLAlchemy URL works.
"""

import logging
from datetime import datetime
from typing import List, Dict, Any, Optional

from sqlalchemy import (
    create_engine, Column, Integer, String, DateTime, JSON, Index
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import DATABASE_URL, DASHBOARD_USER_ID, COLLECTION_KEYS

logger = logging.getLogger(__name__)

Base = declarative_base()


# ==============================================================================
# DATABASE MODELS
# ==============================================================================

class CollectionRecord(Base):
    """Database model for one user's collection payload."""
    __tablename__ = 'dashboard_collections'

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False)
    collection = Column(String(64), nullable=False)
    payload = Column(JSON, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index('idx_user_collection', 'user_id', 'collection', unique=True),
    )


# ==============================================================================
# STORE
# ==============================================================================

class CollectionStore:
    """
    Persist named collections of record dictionaries.

    Example:
        >>> store = CollectionStore("sqlite://", user_id="user-1")
        >>> store.save("funds", [{"id": "fund-1", "name": "Alpha"}])
        >>> store.load("funds")
        [{'id': 'fund-1', 'name': 'Alpha'}]
    """

    def __init__(self, db_url: str = DATABASE_URL, user_id: str = DASHBOARD_USER_ID):
        """
        Initialize the store.

        Args:
            db_url: SQLAlchemy database URL ("sqlite://" for in-memory)
            user_id: Owner of every collection read or written by this store
        """
        self.db_url = db_url
        self.user_id = user_id

        if db_url.startswith("sqlite:"):
            # StaticPool keeps one connection so in-memory databases survive across sessions
            self.engine = create_engine(
                db_url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool
            )
        else:
            self.engine = create_engine(db_url)

        Base.metadata.create_all(self.engine)
        self.SessionLocal = sessionmaker(bind=self.engine)

        logger.info(f"CollectionStore initialized for user {user_id}")

    @staticmethod
    def _check_collection(collection: str):
        if collection not in COLLECTION_KEYS.values():
            raise ValueError(f"Unknown collection: {collection}")

    def load(self, collection: str) -> List[Dict[str, Any]]:
        """
        Read a collection.

        Returns:
            List of record dictionaries; empty when nothing was saved yet
        """
        self._check_collection(collection)

        with self.SessionLocal() as session:
            row = session.query(CollectionRecord).filter_by(
                user_id=self.user_id, collection=collection
            ).first()

            if row is None:
                return []
            return list(row.payload or [])

    def save(self, collection: str, records: List[Dict[str, Any]]) -> None:
        """
        Replace a collection with the given records.

        Raises:
            SQLAlchemyError: When the write fails; the session is rolled back
        """
        self._check_collection(collection)

        with self.SessionLocal() as session:
            try:
                row = session.query(CollectionRecord).filter_by(
                    user_id=self.user_id, collection=collection
                ).first()

                if row is None:
                    row = CollectionRecord(user_id=self.user_id, collection=collection, payload=list(records))
                    session.add(row)
                else:
                    row.payload = list(records)
                    row.updated_at = datetime.utcnow()

                session.commit()
            except SQLAlchemyError as e:
                session.rollback()
                logger.error(f"Failed to save collection {collection}: {e}")
                raise

        logger.debug(f"Saved {len(records)} records to {collection}")

    def clear(self, collection: Optional[str] = None) -> int:
        """
        Delete one collection, or every collection of this user.

        Returns:
            Number of collections removed
        """
        if collection is not None:
            self._check_collection(collection)

        with self.SessionLocal() as session:
            try:
                query = session.query(CollectionRecord).filter_by(user_id=self.user_id)
                if collection is not None:
                    query = query.filter_by(collection=collection)
                removed = query.delete()
                session.commit()
            except SQLAlchemyError as e:
                session.rollback()
                logger.error(f"Failed to clear collections: {e}")
                raise

        logger.info(f"Cleared {removed} collections for user {self.user_id}")
        return removed

    def collection_names(self) -> List[str]:
        """Names of the collections this user has saved."""
        with self.SessionLocal() as session:
            rows = session.query(CollectionRecord.collection).filter_by(user_id=self.user_id).all()
            return sorted(name for (name,) in rows)

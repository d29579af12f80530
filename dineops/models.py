"""
SQLAlchemy Database Models

The tenant store keeps every document in a single table. A row is addressed
by (namespace, collection, doc_id): namespace is the restaurant id for
tenant-scoped collections and GLOBAL_NAMESPACE for the platform directory
(restaurants, admins).
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON, UniqueConstraint, Index
from sqlalchemy.sql import func

from dineops.database import Base


class DocumentRecord(Base):
    """One stored document of one collection in one namespace."""
    __tablename__ = "documents"

    id = Column(Integer, primary_key=True, autoincrement=True)

    namespace = Column(String(64), nullable=False)
    collection = Column(String(64), nullable=False)
    doc_id = Column(String(64), nullable=False)

    # Full document body, JSON-serialized by the store
    data = Column(JSON, nullable=False, default=dict)

    # Bumped on every UPDATE; a write based on a stale read matches no row
    version = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("namespace", "collection", "doc_id", name="uq_document_address"),
        Index("ix_documents_namespace_collection", "namespace", "collection"),
    )
    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<DocumentRecord {self.namespace}/{self.collection}/{self.doc_id}>"

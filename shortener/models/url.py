from sqlalchemy import Column, Integer, String, DateTime, Boolean, false
from sqlalchemy.sql import func
from shortener.database.connection import Base


class URL(Base):
    """
    URL mapping table.

    Both short_id and original_url carry UNIQUE constraints: they are
    the collision arbiter for concurrent writers, not application checks.
    Rows are never deleted; is_deleted marks a tombstone.
    """
    __tablename__ = "urls"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    short_id = Column(String(32), unique=True, nullable=False, index=True)
    original_url = Column(String(2048), unique=True, nullable=False)
    owner_id = Column(String(64), nullable=False, default="", index=True)
    is_deleted = Column(Boolean, nullable=False, default=False, server_default=false())
    created_at = Column(DateTime(timezone=True), server_default=func.now())

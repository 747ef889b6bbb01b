"""
Versioned, environment-scoped key/value configuration rows
"""

from sqlalchemy import Column, BigInteger, String, DateTime, Text, Index
from sqlalchemy.sql import func
from chatcoach.core.database import Base


class Config(Base):
    __tablename__ = "config"

    id = Column(BigInteger, primary_key=True, autoincrement=False)
    key = Column("k", String(255), nullable=False)
    value = Column(Text, nullable=False, default="")
    app = Column(String(64), nullable=False, default="")
    platform = Column(String(64), nullable=False, default="")
    env = Column(String(64), nullable=False, default="")
    version = Column(String(32), nullable=False, default="")  # Empty means "any client version"
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index('idx_config_k', 'k'),
    )

from sqlalchemy import Column, DateTime, JSON, String, Text
from sqlalchemy.sql import func

from shared.config.database import Base


class StoredCredentials(Base):
    """The signed-in store manager's session; at most one row per device."""
    __tablename__ = "stored_credentials"

    key = Column(String(32), primary_key=True, default="session")
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text, nullable=True)
    manager = Column(JSON, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.sql import func

from shared.config.database import Base


class PendingItemScan(Base):
    """An item scan confirmed on this device that the backend has not acknowledged yet."""
    __tablename__ = "pending_item_scans"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(64), nullable=False, index=True)
    item_id = Column(String(128), nullable=False)
    barcode = Column(String(64), nullable=False)
    picked_quantity = Column(Integer, nullable=False)
    scanned_at = Column(DateTime(timezone=True), nullable=False)
    attempts = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

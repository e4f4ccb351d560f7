# kas_server/app/models.py
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, DateTime, Float, ForeignKey
from sqlalchemy.orm import relationship

from .db import Base


def _utcnow():
    return datetime.now(timezone.utc)


# workflow status lookup (Pending / In Transit / Delivered / Received ...)
class Status(Base):
    __tablename__ = "status"
    id = Column(Integer, primary_key=True)
    name = Column(String, unique=True, nullable=False)
    description = Column(String, nullable=True)


# one shipment
class Tracking(Base):
    __tablename__ = "tracking"
    id = Column(Integer, primary_key=True)
    kas_id = Column(String, index=True, nullable=False)
    courier = Column(String, nullable=False)
    tracking_number = Column(String, unique=True, index=True, nullable=False)
    status_id = Column(Integer, ForeignKey("status.id"), nullable=True)
    route = Column(String, nullable=False)
    weight = Column(Float, nullable=True)
    shipping_date = Column(DateTime(timezone=True), nullable=True)
    delivery_date = Column(DateTime(timezone=True), nullable=True)
    fedex_delivery_status = Column(String, nullable=False)
    last_update = Column(DateTime(timezone=True), nullable=False)
    transit_time = Column(String, nullable=True)
    origin = Column(String, nullable=False)
    destination = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, index=True)

    status = relationship("Status")
    history = relationship(
        "TrackingHistory",
        back_populates="tracking",
        cascade="all, delete-orphan",
        order_by="TrackingHistory.date.desc()",
    )
    images = relationship("Image", back_populates="tracking")


# scan events, written together with their tracking row
class TrackingHistory(Base):
    __tablename__ = "tracking_history"
    id = Column(Integer, primary_key=True)
    tracking_id = Column(Integer, ForeignKey("tracking.id", ondelete="CASCADE"), index=True, nullable=False)
    date = Column(DateTime(timezone=True), nullable=True)
    status = Column(String, nullable=False)
    time = Column(String, nullable=True)
    location = Column(String, nullable=False)
    description = Column(String, nullable=False)

    tracking = relationship("Tracking", back_populates="history")


# package photos; may be uploaded before the tracking row exists
class Image(Base):
    __tablename__ = "images"
    id = Column(Integer, primary_key=True)
    url = Column(String, nullable=False)
    tracking_id = Column(Integer, ForeignKey("tracking.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, index=True)

    tracking = relationship("Tracking", back_populates="images")

# kas_server/app/ingest.py
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import DuplicateTrackingNumber, PersistenceFailure
from .models import Status, Tracking, TrackingHistory
from .normalizer import ScanEventDraft, TrackingDraft
from .utils import generate_kas_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrackingSummary:
    id: int
    kas_id: str
    tracking_number: str
    created_at: Optional[datetime]
    status_id: Optional[int]
    fedex_delivery_status: str

    @classmethod
    def from_row(cls, row) -> "TrackingSummary":
        return cls(
            id=row.id,
            kas_id=row.kas_id,
            tracking_number=row.tracking_number,
            created_at=row.created_at,
            status_id=row.status_id,
            fedex_delivery_status=row.fedex_delivery_status,
        )


def find_duplicate(db: Session, tracking_number: str) -> Optional[TrackingSummary]:
    """Point lookup on the unique tracking_number index."""
    tracking_number = (tracking_number or "").strip()
    if not tracking_number:
        raise ValueError("tracking number is required")
    try:
        row = (db.query(Tracking.id, Tracking.kas_id, Tracking.tracking_number, Tracking.created_at,
                        Tracking.status_id, Tracking.fedex_delivery_status)
               .filter(Tracking.tracking_number == tracking_number)
               .first())
    except SQLAlchemyError as e:
        raise PersistenceFailure(f"duplicate lookup failed: {e}") from e
    return TrackingSummary.from_row(row) if row else None


def _is_tracking_number_violation(exc: IntegrityError) -> bool:
    msg = str(exc.orig).lower()
    return "tracking_number" in msg and ("unique" in msg or "duplicate" in msg)


def _status_id(db: Session, status_name: Optional[str]) -> Optional[int]:
    if not status_name:
        return None
    status = db.query(Status).filter(Status.name == status_name).first()
    if status is None:
        status = Status(name=status_name, description=f"Package is {status_name.lower()}")
        db.add(status)
        db.flush()
    return status.id


def ingest(db: Session, draft: TrackingDraft, events: List[ScanEventDraft],
           status_name: Optional[str] = "Received") -> Tracking:
    """
    Insert the tracking row and all of its history rows in one transaction.
    Nothing stays visible unless everything was written.
    """
    start = time.monotonic()
    try:
        tracking = Tracking(
            kas_id=generate_kas_id(),
            courier=draft.courier,
            tracking_number=draft.tracking_number,
            status_id=_status_id(db, status_name),
            route=draft.route,
            weight=draft.weight,
            shipping_date=draft.shipping_date,
            delivery_date=draft.delivery_date,
            fedex_delivery_status=draft.fedex_delivery_status,
            last_update=draft.last_update,
            transit_time=draft.transit_time,
            origin=draft.origin,
            destination=draft.destination,
        )
        db.add(tracking)
        db.flush()

        if events:
            db.add_all([
                TrackingHistory(
                    tracking_id=tracking.id,
                    date=e.date,
                    status=e.status,
                    time=e.time,
                    location=e.location,
                    description=e.description,
                )
                for e in events
            ])
        db.commit()
    except IntegrityError as e:
        db.rollback()
        if _is_tracking_number_violation(e):
            # unique constraint lost a race against another submission
            raise DuplicateTrackingNumber(draft.tracking_number, _existing_or_none(db, draft.tracking_number)) from e
        logger.exception("integrity error saving tracking %s", draft.tracking_number)
        raise PersistenceFailure(f"Failed to save tracking data: {e.orig}") from e
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("error saving tracking %s", draft.tracking_number)
        raise PersistenceFailure(f"Failed to save tracking data: {e}") from e

    db.refresh(tracking)
    logger.info("ingested %s as %s with %d scan events in %.0f ms",
                tracking.tracking_number, tracking.kas_id, len(events), (time.monotonic() - start) * 1000)
    return tracking


def _existing_or_none(db: Session, tracking_number: str) -> Optional[TrackingSummary]:
    try:
        return find_duplicate(db, tracking_number)
    except PersistenceFailure:
        logger.warning("could not read back existing record for %s", tracking_number)
        return None

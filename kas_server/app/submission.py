# kas_server/app/submission.py
"""
End-to-end logging of one tracking number:

    duplicate check (optional) -> carrier lookup -> normalize -> ingest

A stored duplicate short-circuits before the carrier is called. The
unique constraint hit at insert time is reported the same way, since the
pre-check and the insert are not atomic.
"""
import logging
import time
from dataclasses import dataclass
from typing import Optional, Protocol

from sqlalchemy.orm import Session

from .errors import CarrierFetchFailed, DuplicateTrackingNumber, MalformedPayload
from .ingest import TrackingSummary, find_duplicate, ingest
from .models import Tracking
from .normalizer import normalize

logger = logging.getLogger(__name__)


class CarrierLookup(Protocol):
    def track(self, tracking_number: str) -> dict: ...


@dataclass
class SubmissionResult:
    tracking: Optional[Tracking] = None
    duplicate: Optional[TrackingSummary] = None

    @property
    def success(self) -> bool:
        return self.tracking is not None

    @property
    def is_duplicate(self) -> bool:
        return self.tracking is None


def submit(db: Session, carrier: CarrierLookup, tracking_number: str,
           check_duplicate: bool = True, status_name: Optional[str] = "Received") -> SubmissionResult:
    """
    Returns a SubmissionResult holding either the new record or the
    existing one's summary. Raises CarrierFetchFailed when the carrier
    call fails or its payload can't be read, PersistenceFailure on
    storage errors, ValueError on a blank tracking number.
    """
    start = time.monotonic()
    tracking_number = (tracking_number or "").strip()
    if not tracking_number:
        raise ValueError("Tracking number is required")

    if check_duplicate:
        existing = find_duplicate(db, tracking_number)
        if existing:
            logger.info("duplicate submission for %s (existing %s)", tracking_number, existing.kas_id)
            return SubmissionResult(duplicate=existing)

    try:
        payload = carrier.track(tracking_number)
    except CarrierFetchFailed as e:
        logger.warning("carrier lookup failed for %s: %s", tracking_number, e.reason)
        raise

    try:
        draft, events = normalize(payload)
    except MalformedPayload as e:
        logger.warning("carrier payload for %s unusable: %s", tracking_number, e)
        raise CarrierFetchFailed(f"Invalid tracking data received: {e}") from e

    try:
        tracking = ingest(db, draft, events, status_name=status_name)
    except DuplicateTrackingNumber as e:
        logger.info("duplicate %s detected at insert", tracking_number)
        return SubmissionResult(duplicate=e.existing)

    logger.info("submission for %s finished in %.0f ms", tracking_number, (time.monotonic() - start) * 1000)
    return SubmissionResult(tracking=tracking)

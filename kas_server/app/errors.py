# kas_server/app/errors.py
from typing import Optional


class TrackingError(Exception):
    """Base for every failure the tracking pipeline reports to its caller."""


class MalformedPayload(TrackingError):
    """Carrier response lacks output.completeTrackResults[0].trackResults[0]."""


class DuplicateTrackingNumber(TrackingError):
    """
    The tracking number is already stored. `existing` holds the summary of
    the stored record when it could be read back.
    """

    def __init__(self, tracking_number: str, existing=None):
        super().__init__(f"tracking number {tracking_number} already exists")
        self.tracking_number = tracking_number
        self.existing = existing


class CarrierFetchFailed(TrackingError):
    """Network, auth, or non-2xx failure talking to the carrier."""

    def __init__(self, reason: str, status_code: Optional[int] = None):
        super().__init__(reason)
        self.reason = reason
        self.status_code = status_code


class PersistenceFailure(TrackingError):
    """Any storage error other than the tracking-number unique constraint."""

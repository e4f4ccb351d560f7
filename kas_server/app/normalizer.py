# kas_server/app/normalizer.py
"""
Map one FedEx track result onto a tracking row draft plus its scan history.

`normalize(payload)` is pure: it never touches the database and only raises
MalformedPayload, when the payload lacks
output.completeTrackResults[0].trackResults[0] or a tracking number.
Every other missing or unreadable leaf falls back to "Unknown" or None.
"""
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, List, Optional, Tuple

from .carrier import identify_carrier
from .errors import MalformedPayload
from .fedex_schema import Address, ScanEvent, TrackResult

UNKNOWN = "Unknown"

# weight[] lists the same weight in LB then KG; the second entry is stored
WEIGHT_INDEX = 1

SHIP = "SHIP"
ACTUAL_DELIVERY = "ACTUAL_DELIVERY"


@dataclass(frozen=True)
class TrackingDraft:
    tracking_number: str
    courier: str
    fedex_delivery_status: str
    route: str
    weight: Optional[float]
    last_update: datetime
    shipping_date: Optional[datetime]
    delivery_date: Optional[datetime]
    transit_time: Optional[str]
    origin: str
    destination: str


@dataclass(frozen=True)
class ScanEventDraft:
    date: Optional[datetime]
    status: str
    time: Optional[str]
    location: str
    description: str


def extract_track_result(payload: Any) -> dict:
    """Return output.completeTrackResults[0].trackResults[0] or raise MalformedPayload."""
    try:
        result = payload["output"]["completeTrackResults"][0]["trackResults"][0]
    except (KeyError, IndexError, TypeError):
        raise MalformedPayload("Invalid FedEx tracking data structure")
    if not isinstance(result, dict):
        raise MalformedPayload("Invalid FedEx tracking data structure")
    return result


def _utc(dt: Optional[datetime]) -> Optional[datetime]:
    # carrier timestamps normally carry an offset; a bare one is taken as UTC
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _or_unknown(value: Optional[str]) -> str:
    return value if value else UNKNOWN


def parse_weight(result: TrackResult, index: int = WEIGHT_INDEX) -> Optional[float]:
    dims = result.package_details.weight_and_dimensions if result.package_details else None
    entries = dims.weight if dims and dims.weight else []
    if index >= len(entries) or entries[index] is None:
        return None
    try:
        weight = float(entries[index].value)
    except (TypeError, ValueError):
        return None
    return weight if math.isfinite(weight) else None


def find_date(result: TrackResult, kind: str) -> Optional[datetime]:
    for entry in result.date_and_times or []:
        if entry.type == kind and entry.date_time is not None:
            return _utc(entry.date_time)
    return None


def transit_label(shipping_date: datetime, now: datetime) -> str:
    """
    Bucket elapsed hours since shipping: under a day in hours, under a week
    in days, weeks after that. Each bucket floors.
    """
    hours = max(0, math.floor((now - shipping_date) / timedelta(hours=1)))
    if hours < 24:
        return f"{hours} hours"
    if hours < 24 * 7:
        return f"{hours // 24} days"
    return f"{hours // (24 * 7)} weeks"


def format_address(address: Optional[Address]) -> str:
    address = address or Address()
    return ", ".join([
        _or_unknown(address.city),
        _or_unknown(address.state_or_province_code),
        _or_unknown(address.country_name),
    ])


def format_local_time(dt: Optional[datetime]) -> Optional[str]:
    # clock time at the scan site, e.g. "2:05:09 PM"
    if dt is None:
        return None
    return dt.strftime("%I:%M:%S %p").lstrip("0")


def normalize_scan_event(event: ScanEvent) -> ScanEventDraft:
    loc = event.scan_location
    city = loc.city if loc else None
    country = loc.country_code if loc else None
    return ScanEventDraft(
        date=_utc(event.date),
        status=_or_unknown(event.event_description),
        time=format_local_time(event.date),
        location=f"{_or_unknown(city)}, {_or_unknown(country)}",
        description=event.exception_description or event.event_description or UNKNOWN,
    )


def normalize(payload: Any, now: Optional[datetime] = None) -> Tuple[TrackingDraft, List[ScanEventDraft]]:
    now = _utc(now) or datetime.now(timezone.utc)
    result = TrackResult.model_validate(extract_track_result(payload))

    info = result.tracking_number_info
    tracking_number = (info.tracking_number or "").strip() if info else ""
    if not tracking_number:
        raise MalformedPayload("trackingNumberInfo.trackingNumber is missing")
    courier = (info.carrier_code or "").strip() or identify_carrier(tracking_number)

    shipper = result.shipper_information.address if result.shipper_information else None
    recipient = result.recipient_information.address if result.recipient_information else None
    route = (
        f"{_or_unknown(shipper.country_code if shipper else None)} -> "
        f"{_or_unknown(recipient.country_code if recipient else None)}"
    )

    scan_events = result.scan_events or []
    last_update = _utc(scan_events[0].date) if scan_events else None

    shipping_date = find_date(result, SHIP)
    window = result.estimated_delivery_time_window.window if result.estimated_delivery_time_window else None
    delivery_date = _utc(window.begins) if window and window.begins else find_date(result, ACTUAL_DELIVERY)

    status = result.latest_status_detail.description if result.latest_status_detail else None

    draft = TrackingDraft(
        tracking_number=tracking_number,
        courier=courier,
        fedex_delivery_status=_or_unknown(status),
        route=route,
        weight=parse_weight(result),
        last_update=last_update or now,
        shipping_date=shipping_date,
        delivery_date=delivery_date,
        transit_time=transit_label(shipping_date, now) if shipping_date else None,
        origin=format_address(shipper),
        destination=format_address(recipient),
    )
    return draft, [normalize_scan_event(e) for e in scan_events]

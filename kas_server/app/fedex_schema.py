# kas_server/app/fedex_schema.py
"""
Lenient model of one FedEx Track API `trackResults[]` entry.

Every field is optional. A field whose value does not fit its declared
type comes back as None instead of failing validation, so one odd leaf
never blocks a whole shipment. Unknown keys are ignored.
"""
from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator
from pydantic.alias_generators import to_camel


class _Lenient(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        coerce_numbers_to_str=True,
    )

    @field_validator("*", mode="wrap")
    @classmethod
    def _absorb_defects(cls, value: Any, handler):
        try:
            return handler(value)
        except ValidationError:
            return None


def _only_dicts(value: Any) -> Any:
    if isinstance(value, list):
        return [v for v in value if isinstance(v, dict)]
    return value


class Address(_Lenient):
    city: Optional[str] = None
    state_or_province_code: Optional[str] = None
    country_code: Optional[str] = None
    country_name: Optional[str] = None


class ContactInformation(_Lenient):
    address: Optional[Address] = None


class TrackingNumberInfo(_Lenient):
    tracking_number: Optional[str] = None
    carrier_code: Optional[str] = None


class StatusDetail(_Lenient):
    code: Optional[str] = None
    description: Optional[str] = None


class WeightEntry(_Lenient):
    unit: Optional[str] = None
    value: Optional[str] = None


class WeightAndDimensions(_Lenient):
    weight: Optional[List[Optional[WeightEntry]]] = None


class PackageDetails(_Lenient):
    weight_and_dimensions: Optional[WeightAndDimensions] = None


class DateAndTime(_Lenient):
    type: Optional[str] = None
    date_time: Optional[datetime] = None


class TimeWindow(_Lenient):
    begins: Optional[datetime] = None
    ends: Optional[datetime] = None


class EstimatedDeliveryTimeWindow(_Lenient):
    window: Optional[TimeWindow] = None


class ScanLocation(_Lenient):
    city: Optional[str] = None
    state_or_province_code: Optional[str] = None
    country_code: Optional[str] = None


class ScanEvent(_Lenient):
    date: Optional[datetime] = None
    event_type: Optional[str] = None
    event_description: Optional[str] = None
    exception_description: Optional[str] = None
    scan_location: Optional[ScanLocation] = None


class TrackResult(_Lenient):
    tracking_number_info: Optional[TrackingNumberInfo] = None
    latest_status_detail: Optional[StatusDetail] = None
    shipper_information: Optional[ContactInformation] = None
    recipient_information: Optional[ContactInformation] = None
    package_details: Optional[PackageDetails] = None
    date_and_times: Optional[List[DateAndTime]] = None
    estimated_delivery_time_window: Optional[EstimatedDeliveryTimeWindow] = None
    scan_events: Optional[List[ScanEvent]] = None

    @field_validator("date_and_times", "scan_events", mode="before")
    @classmethod
    def _drop_non_objects(cls, value: Any) -> Any:
        return _only_dicts(value)

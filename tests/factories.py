# tests/factories.py
import copy

SCAN_EVENTS = [
    {
        "date": "2026-10-15T10:20:00+07:00",
        "eventType": "DL",
        "eventDescription": "Delivered",
        "exceptionDescription": "",
        "scanLocation": {"city": "JAKARTA", "stateOrProvinceCode": "JK", "countryCode": "ID"},
    },
    {
        "date": "2026-10-14T08:05:09-05:00",
        "eventType": "DE",
        "eventDescription": "Delivery exception",
        "exceptionDescription": "Customer not available or business closed",
        "scanLocation": {"city": "MEMPHIS", "stateOrProvinceCode": "TN", "countryCode": "US"},
    },
    {
        "date": "2026-10-10T15:30:00-05:00",
        "eventType": "PU",
        "eventDescription": "Picked up",
        "scanLocation": {"city": "MEMPHIS", "stateOrProvinceCode": "TN", "countryCode": "US"},
    },
]


def make_track_result(tracking_number: str = "794843185271", **overrides) -> dict:
    result = {
        "trackingNumberInfo": {
            "trackingNumber": tracking_number,
            "carrierCode": "FDXE",
            "trackingNumberUniqueId": "12029~794843185271~FDEG",
        },
        "latestStatusDetail": {"code": "DL", "statusByLocale": "Delivered", "description": "Delivered"},
        "shipperInformation": {
            "address": {
                "city": "MEMPHIS",
                "stateOrProvinceCode": "TN",
                "countryCode": "US",
                "countryName": "United States",
            }
        },
        "recipientInformation": {
            "address": {
                "city": "JAKARTA",
                "stateOrProvinceCode": "JK",
                "countryCode": "ID",
                "countryName": "Indonesia",
            }
        },
        "packageDetails": {
            "weightAndDimensions": {
                "weight": [{"value": "22.0", "unit": "LB"}, {"value": "10.0", "unit": "KG"}],
            }
        },
        "dateAndTimes": [
            {"type": "ACTUAL_DELIVERY", "dateTime": "2026-10-15T10:20:00+07:00"},
            {"type": "ACTUAL_PICKUP", "dateTime": "2026-10-10T15:30:00-05:00"},
            {"type": "SHIP", "dateTime": "2026-10-10T00:00:00-05:00"},
        ],
        "scanEvents": copy.deepcopy(SCAN_EVENTS),
    }
    result.update(overrides)
    return result


def make_payload(tracking_number: str = "794843185271", **overrides) -> dict:
    return {
        "transactionId": "624deea6-b709-470c-8c39-4b5511281492",
        "output": {
            "completeTrackResults": [
                {
                    "trackingNumber": tracking_number,
                    "trackResults": [make_track_result(tracking_number, **overrides)],
                }
            ]
        },
    }


class FakeCarrier:
    """Stands in for FedexClient; returns canned payloads and records calls."""

    def __init__(self, payloads=None, error=None):
        self.payloads = payloads or {}
        self.error = error
        self.calls = []

    def track(self, tracking_number):
        self.calls.append(tracking_number)
        if self.error:
            raise self.error
        if tracking_number in self.payloads:
            return self.payloads[tracking_number]
        return make_payload(tracking_number)


class FakeImageStore:
    def __init__(self):
        self.objects = {}

    def upload(self, key, data, content_type):
        self.objects[key] = (data, content_type)
        return key

    def delete(self, key):
        self.objects.pop(key, None)

    def url(self, key):
        return f"https://images.test/{key}"

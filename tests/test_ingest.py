# tests/test_ingest.py
import random
from dataclasses import replace
from datetime import datetime, timezone

import pytest

from kas_server.app.errors import DuplicateTrackingNumber, PersistenceFailure
from kas_server.app.ingest import find_duplicate, ingest
from kas_server.app.models import Status, Tracking, TrackingHistory
from kas_server.app.normalizer import ScanEventDraft, normalize
from kas_server.app.utils import KAS_ID_RE, format_kas_id, generate_kas_id
from tests.factories import make_payload

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def _drafts(tracking_number="794843185271", **overrides):
    return normalize(make_payload(tracking_number, **overrides), now=NOW)


def test_kas_id_format():
    for _ in range(50):
        assert KAS_ID_RE.match(generate_kas_id())


def test_kas_id_uses_given_rng():
    assert generate_kas_id(random.Random(7)) == generate_kas_id(random.Random(7))
    assert format_kas_id("123456789") == "K-123-456789"


def test_ingest_creates_record_with_history(db):
    draft, events = _drafts()
    tracking = ingest(db, draft, events)

    assert tracking.id is not None
    assert KAS_ID_RE.match(tracking.kas_id)
    assert tracking.tracking_number == "794843185271"
    assert tracking.status.name == "Received"
    assert tracking.weight == 10.0
    assert tracking.route == "US -> ID"

    rows = db.query(TrackingHistory).filter_by(tracking_id=tracking.id).all()
    assert len(rows) == 3
    assert sorted(r.location for r in rows) == ["JAKARTA, ID", "MEMPHIS, US", "MEMPHIS, US"]
    assert {r.description for r in rows} == {
        "Delivered",
        "Customer not available or business closed",
        "Picked up",
    }


def test_ingest_without_scan_events(db):
    draft, events = _drafts(scanEvents=[])
    tracking = ingest(db, draft, events)

    assert db.query(TrackingHistory).count() == 0
    assert db.query(Tracking).count() == 1
    assert tracking.transit_time == "1 weeks"


def test_ingest_unknown_status_name_is_created(db):
    draft, events = _drafts()
    tracking = ingest(db, draft, events, status_name="Awaiting Pickup")
    status = db.query(Status).filter_by(name="Awaiting Pickup").one()
    assert tracking.status_id == status.id


def test_duplicate_insert_is_reported_with_existing_summary(db):
    draft, events = _drafts()
    first = ingest(db, draft, events)

    with pytest.raises(DuplicateTrackingNumber) as exc:
        ingest(db, draft, events)

    assert exc.value.existing is not None
    assert exc.value.existing.kas_id == first.kas_id
    assert db.query(Tracking).count() == 1
    assert db.query(TrackingHistory).count() == 3


def test_failed_history_insert_leaves_nothing_behind(db):
    draft, events = _drafts()
    broken = events[:2] + [replace(events[2], status=None)]

    with pytest.raises(PersistenceFailure):
        ingest(db, draft, broken)

    assert db.query(Tracking).count() == 0
    assert db.query(TrackingHistory).count() == 0


def test_find_duplicate(db):
    assert find_duplicate(db, "794843185271") is None

    draft, events = _drafts()
    tracking = ingest(db, draft, events)

    found = find_duplicate(db, " 794843185271 ")
    assert found.id == tracking.id
    assert found.kas_id == tracking.kas_id
    assert found.status_id == tracking.status_id
    assert found.fedex_delivery_status == "Delivered"
    assert found.created_at is not None
    # no intervening ingest -> same answer
    assert find_duplicate(db, "794843185271") == found


def test_find_duplicate_requires_number(db):
    with pytest.raises(ValueError):
        find_duplicate(db, "   ")


def test_history_rows_are_removed_with_record(db):
    draft, events = _drafts()
    tracking = ingest(db, draft, events)
    db.delete(tracking)
    db.commit()
    assert db.query(TrackingHistory).count() == 0


def test_scan_event_with_missing_date_is_stored(db):
    draft, _ = _drafts()
    events = [ScanEventDraft(date=None, status="Unknown", time=None, location="Unknown, Unknown",
                             description="Unknown")]
    tracking = ingest(db, draft, events)
    assert len(tracking.history) == 1


def test_history_rows_keep_event_date_and_local_time(db):
    draft, events = _drafts()
    tracking = ingest(db, draft, events)

    rows = {r.description: r for r in db.query(TrackingHistory).filter_by(tracking_id=tracking.id)}
    for event in events:
        row = rows[event.description]
        stored = row.date if row.date.tzinfo else row.date.replace(tzinfo=timezone.utc)
        assert stored == event.date
    assert rows["Delivered"].time == "10:20:00 AM"
    assert rows["Customer not available or business closed"].time == "8:05:09 AM"
    assert rows["Picked up"].time == "3:30:00 PM"
    assert rows["Picked up"].date.replace(tzinfo=None) == datetime(2026, 10, 10, 20, 30)

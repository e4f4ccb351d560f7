# kas_server/app/api.py
import logging
import math
import time
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, List, Optional

from fastapi import Body, Depends, FastAPI, File, Form, HTTPException, Query, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from .carrier import FedexClient
from .config import get_settings
from .db import get_db, init_db
from .errors import CarrierFetchFailed, DuplicateTrackingNumber, MalformedPayload, PersistenceFailure
from .ingest import TrackingSummary, find_duplicate, ingest
from .models import Image, Status, Tracking
from .normalizer import normalize
from .storage import ImageStore
from .submission import submit

logger = logging.getLogger(__name__)

app = FastAPI(title="KAS Tracking API")

VALID_IMAGE_TYPES = {"image/png", "image/jpeg", "image/jpg", "image/webp"}


# Startup: init DB
@app.on_event("startup")
def on_startup():
    init_db()


@lru_cache
def get_carrier() -> FedexClient:
    return FedexClient()


@lru_cache
def get_image_store() -> ImageStore:
    return ImageStore()


# ---------------------------
# Serialisation
# ---------------------------
def _iso(dt: Optional[datetime]) -> Optional[str]:
    # sqlite hands DateTime(timezone=True) back naive; stored values are UTC
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.isoformat()


def summary_to_dict(s: Optional[TrackingSummary]) -> Optional[dict]:
    if s is None:
        return None
    return {
        "id": s.id,
        "kas_id": s.kas_id,
        "tracking_number": s.tracking_number,
        "timestamp": _iso(s.created_at),
        "status": {"id": s.status_id},
        "fedex_delivery_status": s.fedex_delivery_status,
    }


def tracking_to_dict(t: Tracking, store: Optional[ImageStore] = None) -> dict:
    out = {
        "id": t.id,
        "kas_id": t.kas_id,
        "courier": t.courier,
        "tracking_number": t.tracking_number,
        "status_id": t.status_id,
        "status": {"id": t.status.id, "name": t.status.name} if t.status else None,
        "route": t.route,
        "weight": t.weight,
        "shipping_date": _iso(t.shipping_date),
        "delivery_date": _iso(t.delivery_date),
        "fedex_delivery_status": t.fedex_delivery_status,
        "last_update": _iso(t.last_update),
        "transit_time": t.transit_time,
        "origin": t.origin,
        "destination": t.destination,
        "created_at": _iso(t.created_at),
        "history": [
            {
                "id": h.id,
                "date": _iso(h.date),
                "status": h.status,
                "time": h.time,
                "location": h.location,
                "description": h.description,
            }
            for h in t.history
        ],
    }
    if store is not None:
        out["images"] = [{"id": i.id, "key": i.url, "url": store.url(i.url)} for i in t.images]
    return out


def _duplicate_response(e: DuplicateTrackingNumber) -> JSONResponse:
    return JSONResponse(
        status_code=409,
        content={"is_duplicate": True, "error": str(e), "existing_entry": summary_to_dict(e.existing)},
    )


# ---------------------------
# Ingest a raw carrier payload
# ---------------------------
@app.post("/api/tracking/ingest", status_code=201)
def ingest_payload(payload: Any = Body(...), db: Session = Depends(get_db)):
    settings = get_settings()
    try:
        draft, events = normalize(payload)
        tracking = ingest(db, draft, events, status_name=settings.DEFAULT_STATUS_NAME)
    except MalformedPayload as e:
        raise HTTPException(status_code=400, detail=str(e))
    except DuplicateTrackingNumber as e:
        return _duplicate_response(e)
    except PersistenceFailure:
        raise HTTPException(status_code=500, detail="Failed to save tracking data")
    return tracking_to_dict(tracking)


# ---------------------------
# Duplicate check
# ---------------------------
@app.get("/api/tracking/check-duplicate")
def check_duplicate(tracking_number: str = Query(...), db: Session = Depends(get_db)):
    if not tracking_number.strip():
        raise HTTPException(status_code=400, detail="Tracking number is required")
    try:
        existing = find_duplicate(db, tracking_number)
    except PersistenceFailure:
        raise HTTPException(status_code=500, detail="Failed to check duplicate tracking")
    if existing:
        return {"exists": True, "tracking": summary_to_dict(existing)}
    return {"exists": False}


# ---------------------------
# Submit: check -> carrier -> normalize -> ingest
# ---------------------------
class SubmitIn(BaseModel):
    tracking_number: str
    check_duplicate: bool = True


@app.post("/api/tracking/submit")
def submit_tracking(body: SubmitIn, db: Session = Depends(get_db), carrier: FedexClient = Depends(get_carrier)):
    settings = get_settings()
    try:
        result = submit(db, carrier, body.tracking_number, check_duplicate=body.check_duplicate,
                        status_name=settings.DEFAULT_STATUS_NAME)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except CarrierFetchFailed as e:
        raise HTTPException(status_code=502, detail=e.reason)
    except PersistenceFailure:
        raise HTTPException(status_code=500, detail="Failed to save tracking data")

    if result.is_duplicate:
        return _duplicate_response(DuplicateTrackingNumber(body.tracking_number.strip(), result.duplicate))
    return {
        "success": True,
        "tracking": tracking_to_dict(result.tracking),
        "message": "Tracking information processed successfully",
    }


class LookupIn(BaseModel):
    tracking_number: str


@app.post("/api/tracking/lookup")
def lookup_tracking(body: LookupIn, carrier: FedexClient = Depends(get_carrier)):
    tracking_number = body.tracking_number.strip()
    if not tracking_number:
        raise HTTPException(status_code=400, detail="Tracking number is required")
    try:
        return carrier.track(tracking_number)
    except CarrierFetchFailed as e:
        raise HTTPException(status_code=502, detail=e.reason)


# ---------------------------
# Listing / counts
# ---------------------------
@app.get("/api/tracking")
def list_tracking(status: Optional[int] = None, page: int = Query(1, ge=1), limit: int = Query(20, ge=1, le=200),
                  db: Session = Depends(get_db), store: ImageStore = Depends(get_image_store)):
    q = db.query(Tracking)
    if status is not None:
        q = q.filter(Tracking.status_id == status)
    total = q.count()
    rows = (q.options(selectinload(Tracking.history), selectinload(Tracking.images), selectinload(Tracking.status))
            .order_by(Tracking.created_at.desc(), Tracking.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all())
    total_pages = math.ceil(total / limit)
    return {
        "data": [tracking_to_dict(t, store) for t in rows],
        "pagination": {
            "page": page,
            "limit": limit,
            "total_count": total,
            "total_pages": total_pages,
            "has_next_page": page < total_pages,
            "has_prev_page": page > 1,
        },
    }


@app.get("/api/tracking/today-count")
def today_count(db: Session = Depends(get_db)):
    # local midnight, compared in UTC like created_at
    today_start = datetime.now().astimezone().replace(hour=0, minute=0, second=0, microsecond=0)
    count = db.query(Tracking).filter(Tracking.created_at >= today_start.astimezone(timezone.utc)).count()
    return {"count": count}


# ---------------------------
# Single record
# ---------------------------
def _get_tracking_or_404(db: Session, tracking_id: int) -> Tracking:
    t = db.get(Tracking, tracking_id)
    if not t:
        raise HTTPException(status_code=404, detail="tracking not found")
    return t


@app.get("/api/tracking/{tracking_id}")
def get_tracking(tracking_id: int, db: Session = Depends(get_db), store: ImageStore = Depends(get_image_store)):
    return tracking_to_dict(_get_tracking_or_404(db, tracking_id), store)


class StatusChangeIn(BaseModel):
    status_id: int


@app.patch("/api/tracking/{tracking_id}/status")
def change_tracking_status(tracking_id: int, body: StatusChangeIn, db: Session = Depends(get_db)):
    t = _get_tracking_or_404(db, tracking_id)
    if not db.get(Status, body.status_id):
        raise HTTPException(status_code=400, detail="unknown status")
    t.status_id = body.status_id
    db.commit()
    logger.info("tracking %s moved to status %s", t.kas_id, body.status_id)
    return {"ok": True, "id": t.id, "status_id": t.status_id}


@app.delete("/api/tracking/{tracking_id}")
def delete_tracking(tracking_id: int, db: Session = Depends(get_db)):
    t = _get_tracking_or_404(db, tracking_id)
    db.delete(t)
    db.commit()
    return {"success": True}


# ---------------------------
# Status lookup table
# ---------------------------
class StatusIn(BaseModel):
    name: str


def _status_description(name: str) -> str:
    if name == "Received":
        return f"Package {name.lower()}"
    return f"Package is {name.lower()}"


def _status_to_dict(s: Status) -> dict:
    return {"id": s.id, "name": s.name, "description": s.description}


@app.get("/api/status")
def list_status(db: Session = Depends(get_db)):
    return [_status_to_dict(s) for s in db.query(Status).order_by(Status.id).all()]


@app.post("/api/status", status_code=201)
def create_status(body: StatusIn, db: Session = Depends(get_db)):
    name = body.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="missing name")
    existing = db.query(Status).filter(Status.name == name).first()
    if existing:
        raise HTTPException(status_code=400, detail="Status already exists")
    s = Status(name=name, description=_status_description(name))
    db.add(s)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=400, detail="Status already exists")
    db.refresh(s)
    return _status_to_dict(s)


@app.put("/api/status/{status_id}")
def update_status(status_id: int, body: StatusIn, db: Session = Depends(get_db)):
    s = db.get(Status, status_id)
    if not s:
        raise HTTPException(status_code=404, detail="status not found")
    name = body.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="missing name")
    s.name = name
    s.description = _status_description(name)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=400, detail="Status already exists")
    return _status_to_dict(s)


@app.delete("/api/status/{status_id}")
def delete_status(status_id: int, db: Session = Depends(get_db)):
    s = db.get(Status, status_id)
    if not s:
        raise HTTPException(status_code=404, detail="status not found")
    in_use = db.query(Tracking).filter(Tracking.status_id == status_id).first()
    if in_use:
        raise HTTPException(status_code=400, detail="status is still assigned to tracking records")
    db.delete(s)
    db.commit()
    return {"success": True, "id": status_id}


# ---------------------------
# Package photos
# ---------------------------
@app.post("/api/images", status_code=201)
def upload_images(file: List[UploadFile] = File(...), tracking_id: Optional[int] = Form(None),
                  db: Session = Depends(get_db), store: ImageStore = Depends(get_image_store)):
    if tracking_id is not None:
        _get_tracking_or_404(db, tracking_id)
    for f in file:
        if f.content_type not in VALID_IMAGE_TYPES:
            raise HTTPException(status_code=400, detail=f"Invalid file type: {f.content_type}")

    # all objects first, then every row in one commit; any failure undoes the batch
    stored = []
    for f in file:
        key = f"{int(time.time() * 1000)}-{f.filename}"
        try:
            store.upload(key, f.file.read(), f.content_type)
        except Exception as e:
            # object store failure only affects this upload, never the tracking row
            logger.exception("upload of %s failed", key)
            _discard_objects(store, stored)
            raise HTTPException(status_code=502, detail=f"Error uploading files: {e}")
        stored.append(key)

    images = [Image(url=key, tracking_id=tracking_id) for key in stored]
    db.add_all(images)
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("saving %d image rows failed", len(images))
        _discard_objects(store, stored)
        raise HTTPException(status_code=500, detail="Error saving image record")

    uploaded = [{"id": i.id, "key": i.url, "tracking_id": i.tracking_id} for i in images]
    return {"message": "Files uploaded successfully", "images": uploaded}


def _discard_objects(store: ImageStore, keys: List[str]):
    for key in keys:
        try:
            store.delete(key)
        except Exception:
            logger.warning("could not remove orphaned object %s", key, exc_info=True)


@app.delete("/api/images/{image_id}")
def delete_image(image_id: int, db: Session = Depends(get_db), store: ImageStore = Depends(get_image_store)):
    image = db.get(Image, image_id)
    if not image:
        raise HTTPException(status_code=404, detail="image not found")
    try:
        store.delete(image.url)
    except Exception as e:
        logger.exception("delete of %s failed", image.url)
        raise HTTPException(status_code=502, detail=f"Error deleting file: {e}")
    db.delete(image)
    db.commit()
    return {"success": image_id}

# kas_server/app/db.py
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from .config import get_settings

settings = get_settings()

_connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(settings.DATABASE_URL, echo=settings.SQL_ECHO, connect_args=_connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

# workflow statuses every install starts with
DEFAULT_STATUSES = [
    ("Pending", "Package is pending"),
    ("In Transit", "Package is in transit"),
    ("Delivered", "Package is delivered"),
    ("Received", "Package Received"),
]


def init_db(bind=None):
    # import models so classes register to Base
    from .models import Status

    bind = bind or engine
    Base.metadata.create_all(bind=bind)

    db = sessionmaker(bind=bind)()
    try:
        existing = {name for (name,) in db.query(Status.name).all()}
        for name, description in DEFAULT_STATUSES:
            if name not in existing:
                db.add(Status(name=name, description=description))
        db.commit()
    finally:
        db.close()


def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

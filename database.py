from datetime import datetime, timezone

from sqlmodel import Session, SQLModel, create_engine

from config import DATABASE_URL
from otpmodel.otp_model import OTPRecord, UserProfile  # noqa: F401 (registers tables)

connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, echo=False, connect_args=connect_args)


def init_db(bind=None):
    SQLModel.metadata.create_all(bind or engine)


def get_session(bind=None):
    return Session(bind or engine)


def as_utc(value: datetime) -> datetime:
    # SQLite stores naive datetime, so replace tzinfo
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value

from sqlalchemy import DateTime
from sqlmodel import SQLModel, Field
from datetime import datetime, timezone


class OTPRecord(SQLModel, table=True):
    __tablename__ = "otp_records"

    identity: str = Field(primary_key=True)
    code_hash: str
    expires_at: datetime = Field(sa_type=DateTime(timezone=True))
    attempts: int = 0
    last_sent_at: datetime = Field(sa_type=DateTime(timezone=True))
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_type=DateTime(timezone=True),
    )
    email_snapshot: str
    delivery_status: str = "pending"  # pending | sent | failed
    version: int = 1


class UserProfile(SQLModel, table=True):
    __tablename__ = "user_profiles"

    identity: str = Field(primary_key=True)
    email: str | None = None
    email_verified: bool = False

import logging

from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from database import engine as default_engine
from database import get_session
from otpmodel.otp_model import OTPRecord, UserProfile
from services.otp_errors import InternalFailure

logger = logging.getLogger("otp_ledger_api.store")


class OTPStore:
    """
    Storage boundary for OTP records.

    Every write is conditional on the record version the caller last read, so
    two writers racing on the same identity cannot both win.
    """

    def __init__(self, bind=None):
        self.bind = bind or default_engine

    def load(self, identity: str) -> OTPRecord | None:
        with get_session(self.bind) as session:
            record = session.get(OTPRecord, identity)
            if record is not None:
                session.expunge(record)
            return record

    def compare_and_swap(
        self, identity: str, expected_version: int | None, **fields
    ) -> int | None:
        """
        Write `fields` to the record for `identity` if it is still at
        `expected_version`. `None` means "no record must exist yet".

        Returns the new version, or None if another writer got there first.
        """
        with get_session(self.bind) as session:
            if expected_version is None:
                session.add(OTPRecord(identity=identity, version=1, **fields))
                try:
                    session.commit()
                except IntegrityError:
                    session.rollback()
                    logger.info(f"OTP record insert lost race for identity={identity}")
                    return None
                return 1

            stmt = (
                update(OTPRecord)
                .where(OTPRecord.identity == identity)
                .where(OTPRecord.version == expected_version)
                .values(version=expected_version + 1, **fields)
            )
            result = session.exec(stmt)
            session.commit()

            if result.rowcount != 1:
                logger.info(
                    f"OTP record update lost race for identity={identity} "
                    f"at version={expected_version}"
                )
                return None
            return expected_version + 1

    def delete(
        self, identity: str, expected_version: int, mark_verified: bool = False
    ) -> bool:
        """
        Delete the record if it is still at `expected_version`. With
        `mark_verified`, the profile's email_verified flag is set in the same
        transaction.
        """
        with get_session(self.bind) as session:
            stmt = (
                delete(OTPRecord)
                .where(OTPRecord.identity == identity)
                .where(OTPRecord.version == expected_version)
            )
            result = session.exec(stmt)

            if result.rowcount != 1:
                session.rollback()
                return False

            if mark_verified:
                profile = session.get(UserProfile, identity) or UserProfile(
                    identity=identity
                )
                profile.email_verified = True
                session.add(profile)

            session.commit()
            return True


class ProfileStore:
    def __init__(self, bind=None):
        self.bind = bind or default_engine

    def get_email(self, identity: str) -> str | None:
        try:
            with get_session(self.bind) as session:
                profile = session.get(UserProfile, identity)
                return profile.email if profile else None
        except SQLAlchemyError as e:
            logger.exception(f"Storage failure looking up email for identity={identity}")
            raise InternalFailure() from e

    def is_email_verified(self, identity: str) -> bool:
        with get_session(self.bind) as session:
            profile = session.get(UserProfile, identity)
            return bool(profile and profile.email_verified)

    def upsert(self, identity: str, email: str | None) -> None:
        """Seed or replace the stored email for an identity (provisioning and tests)."""
        with get_session(self.bind) as session:
            profile = session.get(UserProfile, identity) or UserProfile(
                identity=identity
            )
            profile.email = email
            session.add(profile)
            session.commit()

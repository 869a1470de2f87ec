import math
import secrets
import string
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable
import logging

from argon2 import PasswordHasher
from argon2.exceptions import (
    VerifyMismatchError,
    VerificationError,
    InvalidHash,
)
from sqlalchemy.exc import SQLAlchemyError

from config import (
    OTP_CODE_LENGTH,
    OTP_LIFETIME_MINUTES,
    OTP_MAX_ATTEMPTS,
    OTP_PEPPER,
    OTP_RESEND_COOLDOWN_SECONDS,
)
from database import as_utc
from services.keyed_lock import KeyedLock
from services.otp_errors import (
    BadFormat,
    DeliveryFailed,
    InternalFailure,
    NoEmailOnAccount,
    RateLimited,
)
from services.otp_store import OTPStore

logger = logging.getLogger("otp_ledger_api.otp")

ph = PasswordHasher()

DELIVERY_PENDING = "pending"
DELIVERY_SENT = "sent"
DELIVERY_FAILED = "failed"


@dataclass(frozen=True)
class OTPPolicy:
    code_length: int = OTP_CODE_LENGTH
    lifetime: timedelta = field(
        default_factory=lambda: timedelta(minutes=OTP_LIFETIME_MINUTES)
    )
    cooldown: timedelta = field(
        default_factory=lambda: timedelta(seconds=OTP_RESEND_COOLDOWN_SECONDS)
    )
    max_attempts: int = OTP_MAX_ATTEMPTS


@dataclass(frozen=True)
class CodeDelivery:
    identity: str
    email: str
    expires_at: datetime


@dataclass(frozen=True)
class VerifyResult:
    success: bool
    # Diagnostic only. Logged, never returned to the caller.
    reason: str | None = None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_otp(length: int = OTP_CODE_LENGTH) -> str:
    """Uniform numeric code with no leading zero, e.g. 100000-999999."""
    low = 10 ** (length - 1)
    return str(low + secrets.randbelow(9 * low))


def is_well_formed(code: str, length: int = OTP_CODE_LENGTH) -> bool:
    return len(code) == length and all(c in string.digits for c in code)


def _material(code: str, identity: str, pepper: str) -> str:
    return f"{code}|{identity}|{pepper}"


def hash_otp(code: str, identity: str, pepper: str) -> str:
    # Argon2 draws a fresh random salt for every hash.
    return ph.hash(_material(code, identity, pepper))


def otp_matches(code_hash: str, code: str, identity: str, pepper: str) -> bool:
    try:
        return ph.verify(code_hash, _material(code, identity, pepper))
    except VerifyMismatchError:
        return False


class OTPLedger:
    """
    Issues and verifies email verification codes, one record per identity.

    Both operations for the same identity are serialized through a keyed lock
    and every write goes through the store's compare-and-swap, so the cooldown
    and attempt limits hold under concurrent callers.
    """

    def __init__(
        self,
        sender,
        store: OTPStore | None = None,
        pepper: str | None = None,
        policy: OTPPolicy | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.sender = sender
        self.store = store or OTPStore()
        self.pepper = str(OTP_PEPPER) if pepper is None else pepper
        self.policy = policy or OTPPolicy()
        self.clock = clock
        self.locks = KeyedLock()
        self._decoy_hash = None

    def request_code(self, identity: str, email: str | None) -> CodeDelivery:
        if not email:
            logger.warning(f"OTP request rejected: no email on account for identity={identity}")
            raise NoEmailOnAccount()

        with self.locks.hold(identity):
            try:
                return self._issue(identity, email)
            except SQLAlchemyError as e:
                logger.exception(f"Storage failure issuing OTP for identity={identity}")
                raise InternalFailure() from e

    def verify_code(self, identity: str, candidate: str | None) -> VerifyResult:
        code = (candidate or "").strip()
        if not is_well_formed(code, self.policy.code_length):
            logger.warning(f"Rejected OTP verification due to invalid format for identity={identity}")
            raise BadFormat()

        with self.locks.hold(identity):
            try:
                result = self._verify(identity, code)
            except SQLAlchemyError as e:
                logger.exception(f"Storage failure verifying OTP for identity={identity}")
                raise InternalFailure() from e

        if result.success:
            logger.info(f"OTP verified successfully for identity={identity}")
        else:
            logger.warning(f"OTP verification failed for identity={identity}: {result.reason}")
        return result

    def retry_after(self, record, now: datetime) -> int:
        """Seconds until `record` may be reissued; 0 if it may be now."""
        remaining = self.policy.cooldown - (now - as_utc(record.last_sent_at))
        if remaining <= timedelta(0):
            return 0
        return math.ceil(remaining.total_seconds())

    def _issue(self, identity: str, email: str) -> CodeDelivery:
        now = self.clock()
        record = self.store.load(identity)

        if record is not None:
            wait = self.retry_after(record, now)
            if wait > 0:
                logger.info(f"OTP request throttled for identity={identity}, retry in {wait}s")
                raise RateLimited(wait)

        otp = generate_otp(self.policy.code_length)
        expires_at = now + self.policy.lifetime

        version = self.store.compare_and_swap(
            identity,
            record.version if record else None,
            code_hash=hash_otp(otp, identity, self.pepper),
            expires_at=expires_at,
            attempts=0,
            last_sent_at=now,
            created_at=now,
            email_snapshot=email,
            delivery_status=DELIVERY_PENDING,
        )
        if version is None:
            # A concurrent request for the same identity issued first.
            raise RateLimited(math.ceil(self.policy.cooldown.total_seconds()))

        try:
            self.sender.send_verification_email(email, otp)
        except Exception as e:
            logger.exception(f"OTP delivery failed for identity={identity}, email={email}")
            self.store.compare_and_swap(
                identity, version, delivery_status=DELIVERY_FAILED
            )
            raise DeliveryFailed() from e

        self.store.compare_and_swap(identity, version, delivery_status=DELIVERY_SENT)
        logger.info(f"OTP issued for identity={identity}, email={email}")

        return CodeDelivery(identity=identity, email=email, expires_at=expires_at)

    def _verify(self, identity: str, code: str) -> VerifyResult:
        now = self.clock()
        record = self.store.load(identity)

        if record is None:
            self._spend_decoy(code)
            return VerifyResult(False, "no_record")

        if record.attempts >= self.policy.max_attempts:
            self._spend_decoy(code)
            return VerifyResult(False, "locked_out")

        if now >= as_utc(record.expires_at):
            self._spend_decoy(code)
            return VerifyResult(False, "expired")

        try:
            matched = otp_matches(record.code_hash, code, identity, self.pepper)
        except InvalidHash as e:
            # Stored hash is corrupted (should never happen unless storage corrupted)
            logger.error(f"OTP verification failed due to invalid hash for identity={identity}")
            raise InternalFailure() from e
        except VerificationError as e:
            logger.exception(f"General Argon2 verification error for identity={identity}")
            raise InternalFailure() from e

        if not matched:
            swapped = self.store.compare_and_swap(
                identity, record.version, attempts=record.attempts + 1
            )
            if swapped is None:
                return VerifyResult(False, "conflict")
            return VerifyResult(False, "bad_code")

        if not self.store.delete(identity, record.version, mark_verified=True):
            return VerifyResult(False, "conflict")

        return VerifyResult(True)

    def _spend_decoy(self, code: str) -> None:
        # Same hashing cost as a real comparison, so response time does not
        # reveal which check rejected the code.
        if self._decoy_hash is None:
            self._decoy_hash = ph.hash(secrets.token_hex(16))
        otp_matches(self._decoy_hash, code, "", self.pepper)

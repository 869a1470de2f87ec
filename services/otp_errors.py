class OTPError(Exception):
    """Base class for failures surfaced by the OTP ledger."""

    status_code = 500
    detail = "internal_error"


class NoEmailOnAccount(OTPError):
    status_code = 400
    detail = "No email on account"


class RateLimited(OTPError):
    status_code = 429
    detail = "Please wait before requesting again"

    def __init__(self, retry_after: int):
        super().__init__(f"retry after {retry_after}s")
        self.retry_after = retry_after


class BadFormat(OTPError):
    status_code = 400
    detail = "bad_code"


class DeliveryFailed(OTPError):
    status_code = 500
    detail = "send_failed"


class InternalFailure(OTPError):
    status_code = 500
    detail = "internal_error"

from contextlib import asynccontextmanager
from functools import lru_cache

from fastapi import APIRouter, Depends, FastAPI, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from sqlalchemy.exc import SQLAlchemyError

from auth import TokenPayload, get_current_token
from config import CORS_ORIGINS
from database import init_db
from models import (
    ErrorResponse,
    SendOTPResponse,
    VerifyOTPRequest,
    VerifyOTPResponse,
)
from services.email_service import get_email_sender
from services.logs_service import logger
from services.otp_errors import BadFormat, InternalFailure, OTPError, RateLimited
from services.otp_service import OTPLedger
from services.otp_store import ProfileStore


# Initialize the OTP database
@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting up... Initializing database.")
    init_db()
    logger.info("Database initialized.")
    yield


app = FastAPI(
    title="Email OTP API",
    description="Issue and verify one-time codes proving control of an account's email address",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Create router with /api/v1 prefix
router = APIRouter(prefix="/api/v1")


@lru_cache
def get_ledger() -> OTPLedger:
    return OTPLedger(sender=get_email_sender())


@lru_cache
def get_profile_store() -> ProfileStore:
    return ProfileStore()


def otp_error_response(err: OTPError) -> JSONResponse:
    headers = None
    if isinstance(err, RateLimited):
        headers = {"Retry-After": str(err.retry_after)}
    return JSONResponse(
        status_code=err.status_code, content={"error": err.detail}, headers=headers
    )


@app.get("/", response_class=PlainTextResponse, tags=["Health"])
def health():
    return "OK"


# Route handlers are sync so they run in the threadpool; the ledger
# serializes work per identity.
@router.post(
    "/otp/request",
    response_model=SendOTPResponse,
    tags=["OTP"],
    summary="Send a verification code",
    description="Email a one-time code to the address on the caller's account. "
    "A new code may be requested once the resend cooldown has passed; "
    "requesting a new code invalidates the previous one.",
    responses={
        200: {"description": "The code was sent"},
        400: {"model": ErrorResponse, "description": "The account has no email address"},
        403: {"description": "The JWT is invalid"},
        429: {"model": ErrorResponse, "description": "A code was sent too recently"},
        500: {"model": ErrorResponse, "description": "The code could not be sent"},
    },
)
def request_otp(
    token: TokenPayload = Depends(get_current_token),
    ledger: OTPLedger = Depends(get_ledger),
    profiles: ProfileStore = Depends(get_profile_store),
):
    identity = token.sub

    try:
        email = token.email or profiles.get_email(identity)
        ledger.request_code(identity, email)
    except SQLAlchemyError:
        logger.exception(f"Storage failure handling OTP request for identity={identity}")
        return otp_error_response(InternalFailure())
    except OTPError as err:
        return otp_error_response(err)

    return SendOTPResponse(success=True)


@router.post(
    "/otp/verify",
    response_model=VerifyOTPResponse,
    response_model_exclude_none=True,
    tags=["OTP"],
    summary="Verify a code",
    description="Check a code sent by /otp/request. On success the account's email "
    "is marked verified and the code is consumed. A wrong, expired or exhausted "
    "code, or no code at all, all report success=false.",
    responses={
        200: {"description": "Verification outcome"},
        400: {"description": "The code is malformed (reason=bad_code)"},
        403: {"description": "The JWT is invalid"},
        500: {"description": "Internal failure (reason=verify_failed)"},
    },
)
def verify_otp(
    request: VerifyOTPRequest,
    token: TokenPayload = Depends(get_current_token),
    ledger: OTPLedger = Depends(get_ledger),
):
    try:
        result = ledger.verify_code(token.sub, request.code)
    except BadFormat:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"success": False, "reason": "bad_code"},
        )
    except OTPError:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "reason": "verify_failed"},
        )

    return VerifyOTPResponse(success=result.success)


# Include router in the app
app.include_router(router)


def main():
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()

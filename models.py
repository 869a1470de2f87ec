from pydantic import BaseModel


class VerifyOTPRequest(BaseModel):
    code: str = ""


class SendOTPResponse(BaseModel):
    success: bool


class VerifyOTPResponse(BaseModel):
    success: bool
    reason: str | None = None


class ErrorResponse(BaseModel):
    error: str

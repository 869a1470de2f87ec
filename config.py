import os

from starlette.config import Config
from starlette.datastructures import CommaSeparatedStrings, Secret

# If APP_CONFIG is set, use that as the path to the .env file, or default to .env
env_file = os.getenv("APP_CONFIG", ".env")
if "APP_CONFIG" in os.environ and not os.path.isfile(env_file):
    raise FileNotFoundError(f"The configuration file specified in APP_CONFIG or the default .env does not exist: {env_file}")

config = Config(env_file)

# JWT Configuration
JWT_SECRET_KEY: Secret = config("JWT_SECRET_KEY", cast=Secret)
JWT_ALGORITHM: str = config("JWT_ALGORITHM", default="HS256")
JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = config(
    "JWT_ACCESS_TOKEN_EXPIRE_MINUTES", cast=int, default=60
)
JWT_ISSUER: str = config("JWT_ISSUER", default="https://otp.example.org")
JWT_AUDIENCE: str = config("JWT_AUDIENCE", default="https://otp.example.org")

# Application Configuration
APP_NAME: str = config("APP_NAME", default="TechConnect")
CORS_ORIGINS: CommaSeparatedStrings = config(
    "CORS_ORIGINS", cast=CommaSeparatedStrings, default=CommaSeparatedStrings([])
)
DEBUG: bool = config("DEBUG", cast=bool, default=False)

# Email transport: "ses" or "smtp"
OTP_EMAIL_TRANSPORT: str = config("OTP_EMAIL_TRANSPORT", default="ses")

# AWS SES Configuration
AWS_REGION: str = config("AWS_REGION", default="us-east-2")
AWS_ACCESS_KEY: Secret = config("AWS_ACCESS_KEY", cast=Secret, default="")
AWS_SECRET_ACCESS_KEY: Secret = config("AWS_SECRET_ACCESS_KEY", cast=Secret, default="")
AWS_SES_SENDER_EMAIL: str = config("AWS_SES_SENDER_EMAIL", default="no-reply@example.org")
AWS_SES_TIMEOUT_SECONDS: int = config("AWS_SES_TIMEOUT_SECONDS", cast=int, default=10)

# SMTP Configuration
SMTP_HOST: str = config("SMTP_HOST", default="localhost")
SMTP_PORT: int = config("SMTP_PORT", cast=int, default=465)
SMTP_SECURE: bool = config("SMTP_SECURE", cast=bool, default=True)  # 465: true, 587: false
SMTP_USER: str = config("SMTP_USER", default="")
SMTP_PASS: Secret = config("SMTP_PASS", cast=Secret, default="")
SMTP_TIMEOUT_SECONDS: int = config("SMTP_TIMEOUT_SECONDS", cast=int, default=10)

# OTP Configuration
OTP_PEPPER: Secret = config("OTP_PEPPER", cast=Secret)
OTP_CODE_LENGTH: int = config("OTP_CODE_LENGTH", cast=int, default=6)
OTP_LIFETIME_MINUTES: int = config("OTP_LIFETIME_MINUTES", cast=int, default=10)
OTP_RESEND_COOLDOWN_SECONDS: int = config(
    "OTP_RESEND_COOLDOWN_SECONDS", cast=int, default=45
)
OTP_MAX_ATTEMPTS: int = config("OTP_MAX_ATTEMPTS", cast=int, default=5)

# Database Configuration
DATABASE_URL: str = config("DATABASE_URL", default="sqlite:///./otp_database.db")

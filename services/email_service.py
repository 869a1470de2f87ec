import logging
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from config import (
    APP_NAME,
    AWS_ACCESS_KEY,
    AWS_REGION,
    AWS_SECRET_ACCESS_KEY,
    AWS_SES_SENDER_EMAIL,
    AWS_SES_TIMEOUT_SECONDS,
    OTP_EMAIL_TRANSPORT,
    OTP_LIFETIME_MINUTES,
    SMTP_HOST,
    SMTP_PASS,
    SMTP_PORT,
    SMTP_SECURE,
    SMTP_TIMEOUT_SECONDS,
    SMTP_USER,
)

logger = logging.getLogger("otp_ledger_api.email")


class EmailDeliveryError(Exception):
    """The transport refused or failed to accept the message."""


def build_verification_message(otp: str, lifetime: int = OTP_LIFETIME_MINUTES):
    subject = f"{APP_NAME} - Your verification code"
    text_body = (
        f"Your verification code is: {otp}\n"
        f"This code is valid for {lifetime} minutes."
    )
    html_body = (
        f'<p>Your verification code is: <b style="font-size:18px">{otp}</b></p>'
        f"<p>This code is valid for {lifetime} minutes.</p>"
    )
    return subject, text_body, html_body


class SESEmailSender:
    def __init__(self, client=None, sender=AWS_SES_SENDER_EMAIL):
        self.sender = sender
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client(
                "ses",
                region_name=AWS_REGION,
                aws_access_key_id=str(AWS_ACCESS_KEY),
                aws_secret_access_key=str(AWS_SECRET_ACCESS_KEY),
                config=BotoConfig(
                    connect_timeout=AWS_SES_TIMEOUT_SECONDS,
                    read_timeout=AWS_SES_TIMEOUT_SECONDS,
                    retries={"max_attempts": 1},
                ),
            )
        return self._client

    def send_verification_email(self, email: str, otp: str):
        subject, text_body, html_body = build_verification_message(otp)
        try:
            resp = self.client.send_email(
                Source=self.sender,
                Destination={"ToAddresses": [email]},
                Message={
                    "Subject": {"Data": subject},
                    "Body": {
                        "Html": {"Data": html_body},
                        "Text": {"Data": text_body},
                    },
                },
            )
        except ClientError as e:
            code = e.response["Error"]["Code"]
            logger.exception(f"SES ClientError when sending verification email to {email}: {code}")
            raise EmailDeliveryError(code) from e
        except BotoCoreError as e:
            logger.exception(f"SES transport error when sending verification email to {email}")
            raise EmailDeliveryError(str(e)) from e

        logger.info(f"Verification email sent: {email}, Message ID: {resp.get('MessageId')}")
        return resp


class SMTPEmailSender:
    def __init__(
        self,
        host=SMTP_HOST,
        port=SMTP_PORT,
        secure=SMTP_SECURE,
        username=SMTP_USER,
        password=SMTP_PASS,
        timeout=SMTP_TIMEOUT_SECONDS,
    ):
        self.host = host
        self.port = port
        self.secure = secure
        self.username = username
        self.password = str(password)
        self.timeout = timeout

    def _connect(self) -> smtplib.SMTP:
        context = ssl.create_default_context()
        if self.secure:
            return smtplib.SMTP_SSL(
                self.host, self.port, timeout=self.timeout, context=context
            )
        server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
        server.starttls(context=context)
        return server

    def send_verification_email(self, email: str, otp: str):
        subject, text_body, html_body = build_verification_message(otp)

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.username
        msg["To"] = email
        msg.attach(MIMEText(text_body, "plain"))
        msg.attach(MIMEText(html_body, "html"))

        try:
            with self._connect() as server:
                if self.username:
                    server.login(self.username, self.password)
                server.sendmail(self.username, [email], msg.as_string())
        except (smtplib.SMTPException, OSError) as e:
            logger.exception(f"SMTP error when sending verification email to {email}")
            raise EmailDeliveryError(str(e)) from e

        logger.info(f"Verification email sent via SMTP: {email}")


def get_email_sender(transport: str = OTP_EMAIL_TRANSPORT):
    transport = transport.lower().strip()
    if transport == "ses":
        return SESEmailSender()
    if transport == "smtp":
        return SMTPEmailSender()
    raise ValueError(f"Unknown OTP_EMAIL_TRANSPORT: {transport}")

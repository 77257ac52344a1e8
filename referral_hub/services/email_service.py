import asyncio
import logging
import os
import smtplib
from email.mime.text import MIMEText
from email.utils import formataddr, make_msgid
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel
from twilio.base.exceptions import TwilioException
from twilio.rest import Client

# Load environment variables from .env
load_dotenv()

logger = logging.getLogger(__name__)

SMTP_EMAIL = os.getenv("SMTP_EMAIL")  # sender account
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
SMTP_HOST = os.getenv("SMTP_HOST", "smtp.gmail.com")
SMTP_PORT = int(os.getenv("SMTP_PORT", 587))
SMTP_FROM_NAME = os.getenv("SMTP_FROM_NAME", "Referral Hub")

TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID")
TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN")
TWILIO_PHONE_NUMBER = os.getenv("TWILIO_PHONE_NUMBER")


class NotificationResult(BaseModel):
    success: bool
    id: Optional[str] = None
    error: Optional[str] = None


class SmtpEmailNotifier:
    """
    send(address, subject, body) -> NotificationResult. Never raises for
    transport problems; the result says what happened.
    """

    def __init__(
        self,
        host: Optional[str] = SMTP_HOST,
        port: int = SMTP_PORT,
        sender: Optional[str] = SMTP_EMAIL,
        password: Optional[str] = SMTP_PASSWORD,
        from_name: str = SMTP_FROM_NAME,
    ):
        self.host = host
        self.port = port
        self.sender = sender
        self.password = password
        self.from_name = from_name

    @property
    def configured(self) -> bool:
        return bool(self.host and self.sender and self.password)

    def _deliver(self, to_email: str, msg: MIMEText) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=30) as server:
            server.starttls()
            server.login(self.sender, self.password)
            server.sendmail(self.sender, to_email, msg.as_string())

    async def send(self, to_email: str, subject: str, body: str, from_name: Optional[str] = None) -> NotificationResult:
        if not self.configured:
            logger.warning("Email service is not configured. Skipping email send to: %s", to_email)
            return NotificationResult(success=False, error="Email service is not configured")

        msg = MIMEText(body)
        msg["Subject"] = subject
        msg["From"] = formataddr((from_name or self.from_name, self.sender))
        msg["To"] = to_email
        msg["Message-ID"] = make_msgid()

        try:
            # smtplib blocks; keep it off the event loop
            await asyncio.to_thread(self._deliver, to_email, msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.warning("Failed to send email to %s: %s", to_email, e)
            return NotificationResult(success=False, error=str(e))

        logger.info("Email sent to %s", to_email)
        return NotificationResult(success=True, id=msg["Message-ID"])


class SmsNotifier:
    """
    Twilio SMS transport with the same contract as the email notifier. The
    Twilio client is built lazily from the account credentials, so a missing
    configuration only shows up as a failed result.
    """

    def __init__(
        self,
        account_sid: Optional[str] = TWILIO_ACCOUNT_SID,
        auth_token: Optional[str] = TWILIO_AUTH_TOKEN,
        from_number: Optional[str] = TWILIO_PHONE_NUMBER,
        client=None,
    ):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self._client = client

    @property
    def configured(self) -> bool:
        return bool(self.from_number and (self._client or (self.account_sid and self.auth_token)))

    @property
    def client(self):
        if self._client is None:
            self._client = Client(self.account_sid, self.auth_token)
        return self._client

    def _deliver(self, to_number: str, body: str) -> str:
        message = self.client.messages.create(body=body, to=to_number, from_=self.from_number)
        return message.sid

    async def send(self, to_number: str, subject: str, body: str, from_name: Optional[str] = None) -> NotificationResult:
        if not self.configured:
            logger.warning("SMS service is not configured. Skipping SMS to: %s", to_number)
            return NotificationResult(success=False, error="SMS service is not configured")

        try:
            # the Twilio client blocks; keep it off the event loop
            sid = await asyncio.to_thread(self._deliver, to_number, body)
        except (TwilioException, OSError) as e:
            logger.warning("Failed to send SMS to %s: %s", to_number, e)
            return NotificationResult(success=False, error=str(e))

        logger.info("SMS sent to %s", to_number)
        return NotificationResult(success=True, id=sid)


_email_notifier = SmtpEmailNotifier()
_sms_notifier = SmsNotifier()


def get_email_notifier() -> SmtpEmailNotifier:
    return _email_notifier


def get_sms_notifier() -> SmsNotifier:
    return _sms_notifier

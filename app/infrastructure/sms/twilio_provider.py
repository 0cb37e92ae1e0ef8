import logging
from typing import Optional

from twilio.rest import Client
from twilio.http.http_client import TwilioHttpClient

from ...core.config import settings
from ...application.ports.sms_provider import SMSProvider
from ...utils import mask_phone

logger = logging.getLogger(__name__)


def build_twilio_client() -> Client:
    http_client = TwilioHttpClient(timeout=15, max_retries=3)
    return Client(settings.TWILIO_ACCOUNT_SID, settings.TWILIO_AUTH_TOKEN, http_client=http_client)


class TwilioSMSProvider(SMSProvider):
    def __init__(self, client: Optional[Client] = None, from_number: Optional[str] = None):
        self.client = client or build_twilio_client()
        self.from_number = from_number or settings.TWILIO_PHONE_NUMBER

    def send(self, phone: str, message: str) -> None:
        if not self.from_number:
            raise RuntimeError("Twilio sender phone number not configured")
        sent = self.client.messages.create(to=phone, from_=self.from_number, body=message)
        logger.info(f"SMS queued via Twilio to {mask_phone(phone)} sid={sent.sid}")

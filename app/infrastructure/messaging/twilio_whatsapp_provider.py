import logging
from typing import Optional

from twilio.rest import Client

from ...core.config import settings
from ...application.ports.messaging_provider import MessagingProvider
from ...exceptions import InternalError
from ...utils import mask_phone
from ..sms.twilio_provider import build_twilio_client

logger = logging.getLogger(__name__)


def _whatsapp_address(phone: str) -> str:
    return phone if phone.startswith("whatsapp:") else f"whatsapp:{phone}"


class TwilioWhatsAppProvider(MessagingProvider):
    def __init__(self, client: Optional[Client] = None, business_number: Optional[str] = None):
        self.client = client or build_twilio_client()
        self.business_number = business_number or settings.WHATSAPP_BUSINESS_NUMBER

    def get_business_number(self) -> str:
        if not self.business_number:
            logger.error("WHATSAPP_BUSINESS_NUMBER is not configured")
            raise InternalError()
        return self.business_number

    def send_message(self, to: str, body: str) -> None:
        sent = self.client.messages.create(
            to=_whatsapp_address(to),
            from_=_whatsapp_address(self.get_business_number()),
            body=body,
        )
        logger.info(f"WhatsApp message queued via Twilio to {mask_phone(to)} sid={sent.sid}")

import logging

from ...application.ports.messaging_provider import MessagingProvider
from ...utils import mask_phone

logger = logging.getLogger(__name__)


class LogMessagingProvider(MessagingProvider):
    """Development provider: returns the configured business number and logs outbound messages."""

    def __init__(self, business_number: str) -> None:
        self.business_number = business_number

    def get_business_number(self) -> str:
        return self.business_number

    def send_message(self, to: str, body: str) -> None:
        logger.info(f"[DEV] WhatsApp message to {mask_phone(to)} (not sent): {body}")

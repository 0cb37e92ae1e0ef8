import logging
import re

from ...application.ports.sms_provider import SMSProvider
from ...utils import mask_phone

logger = logging.getLogger(__name__)


def _mask_codes(message: str) -> str:
    return re.sub(r"\d{4,}", lambda m: "*" * (len(m.group(0)) - 2) + m.group(0)[-2:], message or "")


class LogSMSProvider(SMSProvider):
    """Development provider: logs the message instead of sending it."""

    def __init__(self, reveal_codes: bool = False) -> None:
        self.reveal_codes = reveal_codes

    def send(self, phone: str, message: str) -> None:
        body = message if self.reveal_codes else _mask_codes(message)
        logger.info(f"[DEV] SMS to {mask_phone(phone)}: {body}")

from typing import Protocol


class SMSProvider(Protocol):
    def send(self, phone: str, message: str) -> None:
        ...

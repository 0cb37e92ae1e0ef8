from typing import Protocol


class MessagingProvider(Protocol):
    def get_business_number(self) -> str:
        ...

    def send_message(self, to: str, body: str) -> None:
        ...

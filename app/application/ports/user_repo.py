from typing import Protocol, Optional
from datetime import datetime

class UserDto:
    def __init__(self, id: str, name: Optional[str], phone: str, is_verified: bool,
                 created_at: datetime, updated_at: datetime):
        self.id = id
        self.name = name
        self.phone = phone
        self.is_verified = is_verified
        self.created_at = created_at
        self.updated_at = updated_at

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "is_verified": self.is_verified,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

class UserRepository(Protocol):
    def get_by_phone(self, phone: str) -> Optional[UserDto]:
        ...

    def get_by_id(self, user_id: str) -> Optional[UserDto]:
        ...

    def create(self, phone: str, name: str = "User") -> UserDto:
        ...

    def mark_verified(self, user_id: str) -> None:
        ...

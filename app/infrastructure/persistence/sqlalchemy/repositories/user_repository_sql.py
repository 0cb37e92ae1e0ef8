from datetime import datetime, timezone
from typing import Optional
from sqlmodel import Session, select

from .....db.models import User
from .....application.ports.user_repo import UserRepository, UserDto

class SqlUserRepository(UserRepository):
    def __init__(self, session: Session):
        self.session = session

    def _to_dto(self, user: User) -> UserDto:
        return UserDto(
            id=user.id,
            name=user.name,
            phone=user.phone,
            is_verified=bool(user.is_verified),
            created_at=user.created_at,
            updated_at=user.updated_at,
        )

    def get_by_phone(self, phone: str) -> Optional[UserDto]:
        user = self.session.exec(select(User).where(User.phone == phone)).first()
        return self._to_dto(user) if user else None

    def get_by_id(self, user_id: str) -> Optional[UserDto]:
        user = self.session.exec(select(User).where(User.id == user_id)).first()
        return self._to_dto(user) if user else None

    def create(self, phone: str, name: str = "User") -> UserDto:
        user = User(phone=phone, name=name)
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return self._to_dto(user)

    def mark_verified(self, user_id: str) -> None:
        user = self.session.exec(select(User).where(User.id == user_id)).first()
        if not user:
            return
        user.is_verified = True
        user.updated_at = datetime.now(timezone.utc)
        self.session.add(user)
        self.session.commit()

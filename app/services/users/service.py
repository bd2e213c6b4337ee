from sqlalchemy.orm import Session

from app.models.user import User


class UserService:
    def __init__(self, db: Session):
        self.db = db

    def get_or_create_user(
        self,
        telegram_id: str,
        username: str | None = None,
        first_name: str | None = None,
        last_name: str | None = None,
    ) -> User:
        user = self.get_by_telegram_id(telegram_id)
        if user:
            if username is not None or first_name is not None or last_name is not None:
                if username is not None:
                    user.username = username
                if first_name is not None:
                    user.first_name = first_name
                if last_name is not None:
                    user.last_name = last_name
                self.db.add(user)
                self.db.commit()
                self.db.refresh(user)
            return user
        user = User(
            telegram_id=telegram_id,
            username=username,
            first_name=first_name,
            last_name=last_name,
        )
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        return user

    def get(self, user_id: int) -> User | None:
        return self.db.query(User).filter(User.id == user_id).one_or_none()

    def get_by_telegram_id(self, telegram_id: str) -> User | None:
        return self.db.query(User).filter(User.telegram_id == str(telegram_id)).one_or_none()

    def list_all(self) -> list[User]:
        return self.db.query(User).order_by(User.id).all()

# orderflow/repos/user_repo.py
from sqlalchemy import select
from sqlalchemy.orm import Session

from orderflow.data.models.user import UserModel


class UserRepo:
    """Read-only: konta uzytkownikow zarzadzane sa poza tym serwisem."""

    def __init__(self, db: Session):
        self.db = db

    def get_email(self, user_id: int) -> str | None:
        email = self.db.execute(
            select(UserModel.email).where(UserModel.id == user_id)
        ).scalar_one_or_none()
        return email or None

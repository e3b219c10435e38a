# orderflow/data/models/user.py
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, DateTime

from orderflow.data.database import Base


class UserModel(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False)
    # odbiorca powiadomien, pusty = brak maili
    email = Column(String(255), nullable=False, default="", index=True)
    phone_number = Column(String(20), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

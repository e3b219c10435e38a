# orderflow/data/models/cart.py
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, ForeignKey, String, DateTime, Numeric
from sqlalchemy.orm import relationship

from orderflow.data.database import Base


class CartModel(Base):
    __tablename__ = "carts"

    id = Column(Integer, primary_key=True)

    # dokladnie jedno z dwoch: user_id albo session_id
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, unique=True, index=True)
    session_id = Column(String(64), nullable=True, unique=True, index=True)

    version = Column(Integer, nullable=False, default=1)

    coupon_code = Column(String(50), nullable=True)
    coupon_type = Column(String(20), nullable=True)
    coupon_value = Column(Numeric(12, 2), nullable=True)

    shipping_name = Column(String(100), nullable=True)
    shipping_price = Column(Numeric(12, 2), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    items = relationship(
        "CartItemModel",
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartItemModel.id",
    )

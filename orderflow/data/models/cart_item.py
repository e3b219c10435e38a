from sqlalchemy import Column, Integer, ForeignKey, Numeric, String, JSON, CheckConstraint
from sqlalchemy.orm import relationship

from orderflow.data.database import Base


class CartItemModel(Base):
    __tablename__ = "cart_items"

    id = Column(Integer, primary_key=True)
    cart_id = Column(Integer, ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, nullable=False)

    name = Column(String(200), nullable=False)
    image = Column(String(500), nullable=False, default="")
    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(12, 2), nullable=False)

    variant = Column(JSON, nullable=True)
    # kanoniczny JSON wariantu, identyfikuje pozycje razem z product_id
    variant_key = Column(String(500), nullable=False, default="")

    cart = relationship("CartModel", back_populates="items")

    __table_args__ = (CheckConstraint("quantity >= 1", name="ck_cart_item_quantity_positive"),)

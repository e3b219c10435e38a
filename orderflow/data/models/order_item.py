from sqlalchemy import Column, Integer, ForeignKey, Numeric, String, JSON
from sqlalchemy.orm import relationship

from orderflow.data.database import Base


class OrderItemModel(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, nullable=False)

    name = Column(String(200), nullable=False)
    image = Column(String(500), nullable=False, default="")
    price = Column(Numeric(12, 2), nullable=False)
    quantity = Column(Integer, nullable=False)
    variant = Column(JSON, nullable=True)

    order = relationship("OrderModel", back_populates="items")

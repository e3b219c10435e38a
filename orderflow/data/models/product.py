# orderflow/data/models/product.py
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Numeric, CheckConstraint

from orderflow.data.database import Base


class ProductModel(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True)
    name = Column(String(200), nullable=False)
    image = Column(String(500), nullable=False, default="")

    price = Column(Numeric(12, 2), nullable=False)
    is_sale = Column(Boolean, nullable=False, default=False)
    sale_price = Column(Numeric(12, 2), nullable=True)
    sale_end_date = Column(DateTime(timezone=True), nullable=True)

    # zapisywane tylko przez StockLedger
    count_in_stock = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (CheckConstraint("count_in_stock >= 0", name="ck_product_stock_non_negative"),)

    @property
    def current_price(self):
        if self.is_sale and self.sale_price and not self._sale_ended():
            return self.sale_price
        return self.price

    def _sale_ended(self) -> bool:
        if self.sale_end_date is None:
            return False
        end = self.sale_end_date
        if end.tzinfo is None:
            end = end.replace(tzinfo=timezone.utc)
        return end <= datetime.now(timezone.utc)

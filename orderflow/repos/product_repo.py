# orderflow/repos/product_repo.py
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from orderflow.data.models.product import ProductModel
from orderflow.data.models.coupon import CouponModel


class ProductRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_product(self, product_id: int) -> ProductModel | None:
        return self.db.get(ProductModel, product_id)

    def get_products(self, product_ids) -> dict[int, ProductModel]:
        ids = set(product_ids)
        if not ids:
            return {}
        rows = self.db.execute(select(ProductModel).where(ProductModel.id.in_(ids))).scalars().all()
        return {p.id: p for p in rows}

    def decrement_stock_if_available(self, product_id: int, quantity: int) -> int:
        # warunkowy UPDATE, zadnego read-then-write
        result = self.db.execute(
            update(ProductModel)
            .where(
                ProductModel.id == product_id,
                ProductModel.is_active.is_(True),
                ProductModel.count_in_stock >= quantity,
            )
            .values(count_in_stock=ProductModel.count_in_stock - quantity)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def increment_stock(self, product_id: int, quantity: int) -> int:
        result = self.db.execute(
            update(ProductModel)
            .where(ProductModel.id == product_id)
            .values(count_in_stock=ProductModel.count_in_stock + quantity)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def get_coupon(self, code: str) -> CouponModel | None:
        return self.db.execute(
            select(CouponModel).where(CouponModel.code == code.upper())
        ).scalar_one_or_none()

# orderflow/repos/order_repo.py
from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy import select, update, func, or_
from sqlalchemy.orm import Session, selectinload

from orderflow.data.models.order import OrderModel
from orderflow.domain.status import OrderStatus


class OrderRepo:
    def __init__(self, db: Session):
        self.db = db

    def create_order(self, order: OrderModel) -> OrderModel:
        self.db.add(order)
        self.db.commit()
        self.db.refresh(order)
        return order

    def get_order(self, order_id: int) -> OrderModel | None:
        return self.db.get(OrderModel, order_id)

    def get_by_number(self, order_number: str) -> OrderModel | None:
        return self.db.execute(
            select(OrderModel).where(OrderModel.order_number == order_number)
        ).scalar_one_or_none()

    def list_by_user(self, user_id: int, limit: int, offset: int) -> list[OrderModel]:
        return list(
            self.db.execute(
                select(OrderModel)
                .options(selectinload(OrderModel.items))
                .where(OrderModel.user_id == user_id)
                .order_by(OrderModel.created_at.desc(), OrderModel.id.desc())
                .limit(limit)
                .offset(offset)
            ).scalars()
        )

    def count_by_user(self, user_id: int) -> int:
        return self.db.execute(
            select(func.count()).select_from(OrderModel).where(OrderModel.user_id == user_id)
        ).scalar_one()

    # =====================================================
    # ADMIN
    # =====================================================
    @staticmethod
    def _day_prefix(day: date) -> str:
        # numer zamowienia zaczyna sie od YYYYMMDD dnia zlozenia
        return day.strftime("%Y%m%d")

    def _filters(
        self,
        status: str | None = None,
        is_paid: bool | None = None,
        is_delivered: bool | None = None,
        keyword: str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list:
        filters = []

        if status:
            filters.append(OrderModel.status == status)

        if is_paid is not None:
            filters.append(OrderModel.paid_at.is_not(None) if is_paid else OrderModel.paid_at.is_(None))

        if is_delivered is not None:
            filters.append(
                OrderModel.delivered_at.is_not(None) if is_delivered else OrderModel.delivered_at.is_(None)
            )

        if keyword:
            pattern = f"%{keyword}%"
            filters.append(
                or_(OrderModel.order_number.ilike(pattern), OrderModel.invoice_number.ilike(pattern))
            )

        # zakres dat po indeksie order_number, end_date wlacznie
        if start_date:
            filters.append(OrderModel.order_number >= self._day_prefix(start_date))
        if end_date:
            filters.append(OrderModel.order_number < self._day_prefix(end_date + timedelta(days=1)))

        return filters

    def search(self, limit: int, offset: int, **criteria) -> tuple[list[OrderModel], int]:
        filters = self._filters(**criteria)

        count = self.db.execute(
            select(func.count()).select_from(OrderModel).where(*filters)
        ).scalar_one()

        orders = list(
            self.db.execute(
                select(OrderModel)
                .options(selectinload(OrderModel.items))
                .where(*filters)
                .order_by(OrderModel.created_at.desc(), OrderModel.id.desc())
                .limit(limit)
                .offset(offset)
            ).scalars()
        )
        return orders, count

    def count_and_sales(self, *filters) -> tuple[int, Decimal]:
        """(liczba zamowien, suma total_price oplaconych) dla podanych warunkow."""
        count = self.db.execute(
            select(func.count()).select_from(OrderModel).where(*filters)
        ).scalar_one()
        sales = self.db.execute(
            select(func.coalesce(func.sum(OrderModel.total_price), 0))
            .where(OrderModel.paid_at.is_not(None), *filters)
        ).scalar_one()
        return count, sales

    def count_by_status(self) -> dict[str, int]:
        rows = self.db.execute(
            select(OrderModel.status, func.count()).group_by(OrderModel.status)
        ).all()
        return {status: count for status, count in rows}

    def placed_on(self, day: date):
        return OrderModel.order_number.like(f"{self._day_prefix(day)}%")

    def paid_sales_by_day(self, since: date) -> list[tuple[str, Decimal, int]]:
        """[(YYYYMMDD, suma, liczba)] oplaconych zamowien od ``since``, rosnaco po dniu."""
        day = func.substr(OrderModel.order_number, 1, 8)
        rows = self.db.execute(
            select(day, func.sum(OrderModel.total_price), func.count())
            .where(
                OrderModel.paid_at.is_not(None),
                OrderModel.order_number >= self._day_prefix(since),
            )
            .group_by(day)
            .order_by(day)
        ).all()
        return [tuple(row) for row in rows]

    def compare_and_set_status(self, order_id: int, expected: frozenset[OrderStatus], values: dict) -> int:
        """
        UPDATE orders SET ... WHERE id = :id AND status IN (:expected)

        Only one concurrent caller can win a given transition. Returns rowcount.
        """
        result = self.db.execute(
            update(OrderModel)
            .where(OrderModel.id == order_id, OrderModel.status.in_([s.value for s in expected]))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def refresh(self, order: OrderModel) -> OrderModel:
        self.db.refresh(order)
        return order

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()

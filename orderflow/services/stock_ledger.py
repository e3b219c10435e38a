# orderflow/services/stock_ledger.py
from collections import defaultdict
from typing import Iterable

from sqlalchemy.orm import Session

from orderflow.domain.errors import InsufficientStock, ValidationError
from orderflow.repos.product_repo import ProductRepo
from orderflow.utils.logging import get_logger

logger = get_logger(__name__)


def aggregate_lines(lines: Iterable[tuple[int, int]]) -> list[tuple[int, int]]:
    """Sum quantities per product and sort by product id (stable reservation order)."""
    totals: dict[int, int] = defaultdict(int)
    for product_id, quantity in lines:
        if quantity < 1:
            raise ValidationError(f"Quantity for product {product_id} must be at least 1")
        totals[product_id] += quantity
    return sorted(totals.items())


class StockLedger:
    """
    Jedyna sciezka zmiany count_in_stock podczas skladania zamowien.

    Kazda rezerwacja to pojedynczy warunkowy UPDATE (decrement tylko gdy
    count_in_stock >= qty), commitowany osobno. Brak transakcji na wiele
    rekordow, wiec batch kompensuje recznie.
    """

    def __init__(self, db: Session):
        self.db = db
        self.repo = ProductRepo(db)

    def reserve(self, product_id: int, quantity: int) -> None:
        if quantity < 1:
            raise ValidationError("Reservation quantity must be at least 1")

        rowcount = self.repo.decrement_stock_if_available(product_id, quantity)
        self.db.commit()

        if rowcount == 0:
            logger.info(f"Reservation rejected: product {product_id} x{quantity}")
            raise InsufficientStock(product_id, quantity)

        logger.info(f"Reserved product {product_id} x{quantity}")

    def release(self, product_id: int, quantity: int, commit: bool = True) -> None:
        if quantity < 1:
            raise ValidationError("Release quantity must be at least 1")

        rowcount = self.repo.increment_stock(product_id, quantity)
        if commit:
            self.db.commit()

        if rowcount == 0:
            # produkt usuniety w miedzyczasie, nie ma gdzie oddac
            logger.warning(f"Release skipped: product {product_id} no longer exists")
            return

        logger.info(f"Released product {product_id} x{quantity}")

    def reserve_many(self, lines: Iterable[tuple[int, int]]) -> list[tuple[int, int]]:
        """
        Reserve every (product_id, quantity) line or none of them.

        Lines are reserved in ascending product id order. If any line fails,
        everything reserved so far is released before InsufficientStock is
        re-raised. Returns the aggregated lines that were reserved.
        """
        plan = aggregate_lines(lines)
        reserved: list[tuple[int, int]] = []

        try:
            for product_id, quantity in plan:
                self.reserve(product_id, quantity)
                reserved.append((product_id, quantity))
        except Exception:
            if reserved:
                logger.info(f"Rolling back {len(reserved)} reserved line(s)")
            self.db.rollback()
            self.release_many(reserved)
            raise

        return plan

    def release_many(self, lines: Iterable[tuple[int, int]], commit: bool = True) -> None:
        """
        Release every line. With commit=False the increments join the caller's
        transaction (cancellation commits them together with the status change).
        """
        for product_id, quantity in aggregate_lines(lines):
            self.release(product_id, quantity, commit=commit)

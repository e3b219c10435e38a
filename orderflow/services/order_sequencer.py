# orderflow/services/order_sequencer.py
from datetime import date

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from orderflow.data.models.order_counter import OrderCounterModel
from orderflow.domain.errors import SequenceExhausted
from orderflow.utils.clock import local_today
from orderflow.utils.logging import get_logger

logger = get_logger(__name__)

MAX_DAILY_SEQUENCE = 9999

_UPSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


def day_prefix(day: date) -> str:
    return day.strftime("%Y%m%d")


def invoice_number(order_number: str) -> str:
    return f"INV-{order_number}"


class OrderSequencer:
    """
    Numery zamowien YYYYMMDDNNNN.

    Licznik dzienny podbijany jednym atomowym upsertem z RETURNING, nigdy
    przez "znajdz max dzisiejszy numer i dodaj 1". Luki po anulowanych /
    nieudanych zamowieniach sa dozwolone.
    """

    def __init__(self, db: Session):
        self.db = db

    def _insert(self):
        dialect = self.db.get_bind().dialect.name
        try:
            return _UPSERTS[dialect]
        except KeyError:
            raise RuntimeError(f"Atomic order counter not supported on {dialect}") from None

    def next_sequence(self, day: date) -> int:
        prefix = day_prefix(day)
        insert = self._insert()

        stmt = (
            insert(OrderCounterModel)
            .values(day=prefix, value=1)
            .on_conflict_do_update(
                index_elements=[OrderCounterModel.day],
                set_={"value": OrderCounterModel.value + 1},
            )
            .returning(OrderCounterModel.value)
        )
        value = self.db.execute(stmt).scalar_one()
        self.db.commit()
        return value

    def next_order_number(self, day: date | None = None) -> str:
        day = day or local_today()
        sequence = self.next_sequence(day)

        if sequence > MAX_DAILY_SEQUENCE:
            logger.error(f"Daily order sequence exhausted for {day_prefix(day)}")
            raise SequenceExhausted(f"No order numbers left for {day_prefix(day)}")

        number = f"{day_prefix(day)}{sequence:04d}"
        logger.info(f"Minted order number {number}")
        return number

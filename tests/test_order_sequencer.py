from concurrent.futures import ThreadPoolExecutor
from datetime import date

import pytest

from orderflow.data.models import OrderCounterModel
from orderflow.domain.errors import SequenceExhausted
from orderflow.services.order_sequencer import OrderSequencer, invoice_number

DAY = date(2026, 10, 19)


def test_sequential_numbers_have_no_gaps(db):
    sequencer = OrderSequencer(db)

    numbers = [sequencer.next_order_number(DAY) for _ in range(3)]

    assert numbers == ["202610190001", "202610190002", "202610190003"]


def test_each_day_has_its_own_counter(db):
    sequencer = OrderSequencer(db)

    sequencer.next_order_number(DAY)
    sequencer.next_order_number(DAY)

    assert sequencer.next_order_number(date(2026, 10, 20)) == "202610200001"


def test_sequence_exhausted_after_9999(db):
    db.add(OrderCounterModel(day="20261019", value=9999))
    db.commit()

    with pytest.raises(SequenceExhausted):
        OrderSequencer(db).next_order_number(DAY)


def test_invoice_number():
    assert invoice_number("202610190007") == "INV-202610190007"


def test_concurrent_minting_gives_distinct_numbers(file_sessions):
    def mint(_):
        session = file_sessions()
        try:
            return OrderSequencer(session).next_order_number(DAY)
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=8) as pool:
        numbers = list(pool.map(mint, range(16)))

    assert len(set(numbers)) == 16
    assert sorted(numbers) == [f"20261019{n:04d}" for n in range(1, 17)]

import random
from concurrent.futures import ThreadPoolExecutor

import pytest

from orderflow.data.models import ProductModel
from orderflow.domain.errors import InsufficientStock, ValidationError
from orderflow.services.stock_ledger import StockLedger, aggregate_lines


def stock_of(db, product_id):
    db.expire_all()
    return db.get(ProductModel, product_id).count_in_stock


def test_reserve_and_release(db, make_product):
    product = make_product(stock=5)
    ledger = StockLedger(db)

    ledger.reserve(product.id, 3)
    assert stock_of(db, product.id) == 2

    ledger.release(product.id, 3)
    assert stock_of(db, product.id) == 5


def test_reserve_more_than_available_leaves_stock_untouched(db, make_product):
    product = make_product(stock=2)

    with pytest.raises(InsufficientStock) as exc:
        StockLedger(db).reserve(product.id, 3)

    assert exc.value.product_id == product.id
    assert exc.value.requested == 3
    assert stock_of(db, product.id) == 2


def test_inactive_product_cannot_be_reserved(db, make_product):
    product = make_product(stock=10, is_active=False)

    with pytest.raises(InsufficientStock):
        StockLedger(db).reserve(product.id, 1)


def test_reserve_rejects_non_positive_quantity(db, make_product):
    product = make_product(stock=10)

    with pytest.raises(ValidationError):
        StockLedger(db).reserve(product.id, 0)


def test_reserve_many_is_all_or_nothing(db, make_product):
    mug = make_product(name="Kubek", stock=5)
    plate = make_product(name="Talerz", stock=1)

    with pytest.raises(InsufficientStock):
        StockLedger(db).reserve_many([(mug.id, 2), (plate.id, 3)])

    assert stock_of(db, mug.id) == 5
    assert stock_of(db, plate.id) == 1


def test_reserve_many_aggregates_duplicate_lines(db, make_product):
    product = make_product(stock=5)

    plan = StockLedger(db).reserve_many([(product.id, 2), (product.id, 2)])

    assert plan == [(product.id, 4)]
    assert stock_of(db, product.id) == 1


def test_release_of_deleted_product_is_skipped(db):
    StockLedger(db).release(999, 1)


def test_aggregate_lines_sorts_by_product():
    assert aggregate_lines([(3, 1), (1, 2), (3, 4)]) == [(1, 2), (3, 5)]


def test_concurrent_reservations_never_oversell(file_sessions):
    setup = file_sessions()
    product = ProductModel(name="Kubek", image="", price=10, count_in_stock=5)
    setup.add(product)
    setup.commit()
    product_id = product.id
    setup.close()

    def attempt(_):
        session = file_sessions()
        try:
            StockLedger(session).reserve(product_id, 1)
            return 1
        except InsufficientStock:
            return 0
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(attempt, range(12)))

    check = file_sessions()
    assert sum(results) == 5
    assert check.get(ProductModel, product_id).count_in_stock == 0
    check.close()


def test_concurrent_mixed_quantities_stay_within_stock(file_sessions):
    setup = file_sessions()
    product = ProductModel(name="Talerz", image="", price=10, count_in_stock=20)
    setup.add(product)
    setup.commit()
    product_id = product.id
    setup.close()

    quantities = [random.Random(seed).randint(1, 6) for seed in range(15)]

    def attempt(quantity):
        session = file_sessions()
        try:
            StockLedger(session).reserve(product_id, quantity)
            return quantity
        except InsufficientStock:
            return 0
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=6) as pool:
        reserved = sum(pool.map(attempt, quantities))

    check = file_sessions()
    assert reserved <= 20
    assert check.get(ProductModel, product_id).count_in_stock == 20 - reserved
    check.close()

import threading
import time
from decimal import Decimal

import pytest

from conftest import ALICE_ID, BOB_ORDER_ID, CABLE_ID, EARBUDS_ID
from database import MemoryStore, StorageError
from errors import InsufficientStock, NotFoundError, ProductNotFound, TransactionError
from orders import next_order_number, order_total, place_order, update_order_status
from schemas import OrderItemIn, OrderStatus


def items(*pairs):
    return [OrderItemIn(product_id=pid, quantity=qty) for pid, qty in pairs]


def stock_of(store, product_id):
    return next(p["stock"] for p in store.load()["products"] if p["id"] == product_id)


class FailingSaveStore(MemoryStore):
    def _write(self, document):
        raise StorageError("disk full")


def test_total_rounds_half_up():
    assert order_total([Decimal("10.00") * 2, Decimal("5.005")]) == Decimal("25.01")


def test_place_order_total(store):
    order = place_order(store, ALICE_ID, items((EARBUDS_ID, 2), (CABLE_ID, 1)), "1 Alice Road")
    assert order["totalAmount"] == 25.01
    assert [line["subtotal"] for line in order["items"]] == [20.0, 5.005]


def test_successful_order_decrements_stock(store):
    order = place_order(store, ALICE_ID, items((EARBUDS_ID, 4)), "1 Alice Road")

    assert stock_of(store, EARBUDS_ID) == 6
    orders = store.load()["orders"]
    assert len(orders) == 2
    assert orders[-1] == order
    assert order["orderNumber"] == 1002
    assert order["userId"] == ALICE_ID
    assert order["status"] == "pending"
    assert order["items"][0] == {
        "productId": EARBUDS_ID,
        "productName": "Wireless Earbuds",
        "price": 10.0,
        "quantity": 4,
        "subtotal": 40.0,
    }


def test_first_order_number_is_1001(document):
    document["orders"] = []
    order = place_order(MemoryStore(document), ALICE_ID, items((EARBUDS_ID, 1)), "1 Alice Road")
    assert order["orderNumber"] == 1001


def test_next_order_number_ignores_unparseable():
    assert next_order_number([]) == 1001
    assert next_order_number([{"orderNumber": 1005}, {"orderNumber": "1009"}, {"orderNumber": "x"}, {}]) == 1010


def test_insufficient_stock(store):
    with pytest.raises(InsufficientStock) as exc_info:
        place_order(store, ALICE_ID, items((CABLE_ID, 5)), "1 Alice Road")

    err = exc_info.value
    assert err.status_code == 400
    assert (err.product_id, err.available, err.requested) == (CABLE_ID, 3, 5)
    assert "Available: 3, Requested: 5" in err.detail
    assert stock_of(store, CABLE_ID) == 3
    assert len(store.load()["orders"]) == 1


def test_missing_product_leaves_no_partial_effects(store):
    before = store.load()
    with pytest.raises(ProductNotFound) as exc_info:
        place_order(store, ALICE_ID, items((EARBUDS_ID, 2), ("nope", 1)), "1 Alice Road")

    assert exc_info.value.detail == "Product not found: nope"
    assert store.load() == before


def test_late_stock_failure_leaves_earlier_lines_untouched(store):
    before = store.load()
    with pytest.raises(InsufficientStock):
        place_order(store, ALICE_ID, items((EARBUDS_ID, 2), (CABLE_ID, 4)), "1 Alice Road")
    assert store.load() == before


def test_repeated_lines_cannot_oversell(store):
    with pytest.raises(InsufficientStock) as exc_info:
        place_order(store, ALICE_ID, items((CABLE_ID, 2), (CABLE_ID, 2)), "1 Alice Road")
    assert (exc_info.value.available, exc_info.value.requested) == (1, 2)
    assert stock_of(store, CABLE_ID) == 3

    place_order(store, ALICE_ID, items((CABLE_ID, 2), (CABLE_ID, 1)), "1 Alice Road")
    assert stock_of(store, CABLE_ID) == 0


def test_line_items_are_snapshots(store):
    order = place_order(store, ALICE_ID, items((EARBUDS_ID, 1)), "1 Alice Road")

    data = store.load()
    data["products"][0]["price"] = 99.0
    data["products"][0]["name"] = "Renamed"
    store.save(data)

    stored = next(o for o in store.load()["orders"] if o["id"] == order["id"])
    assert stored["items"][0]["price"] == 10.0
    assert stored["items"][0]["productName"] == "Wireless Earbuds"


def test_save_failure_is_transaction_error(document):
    store = FailingSaveStore(document)
    with pytest.raises(TransactionError) as exc_info:
        place_order(store, ALICE_ID, items((EARBUDS_ID, 1)), "1 Alice Road")

    assert exc_info.value.status_code == 500
    assert store.load() == document


def test_update_status_any_to_any(store):
    order = update_order_status(store, BOB_ORDER_ID, OrderStatus.delivered)
    assert order["status"] == "delivered"
    assert order["updatedAt"]

    order = update_order_status(store, BOB_ORDER_ID, OrderStatus.pending)
    assert order["status"] == "pending"
    assert store.load()["orders"][0]["status"] == "pending"


def test_cancel_does_not_restock(store):
    update_order_status(store, BOB_ORDER_ID, OrderStatus.cancelled)
    assert stock_of(store, EARBUDS_ID) == 10


def test_update_status_unknown_order(store):
    with pytest.raises(NotFoundError):
        update_order_status(store, "missing", OrderStatus.shipped)


class SlowReadStore(MemoryStore):
    def _read(self):
        snapshot = super()._read()
        # give other writers a chance to load the same stale snapshot
        time.sleep(0.005)
        return snapshot


def test_concurrent_orders_are_serialized(document):
    store = SlowReadStore(document)
    workers = 10
    barrier = threading.Barrier(workers)
    placed, rejected = [], []

    def buy():
        barrier.wait()
        try:
            placed.append(place_order(store, ALICE_ID, items((CABLE_ID, 1)), "1 Alice Road"))
        except InsufficientStock:
            rejected.append(1)

    threads = [threading.Thread(target=buy) for _ in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert stock_of(store, CABLE_ID) == 0
    assert len(placed) == 3
    assert len(rejected) == 7
    numbers = [o["orderNumber"] for o in store.load()["orders"]]
    assert sorted(numbers) == [1001, 1002, 1003, 1004]

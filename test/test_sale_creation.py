from dataclasses import FrozenInstanceError
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from conftest import build_services, stock_of

from bsm.domain.models import SaleLineItemRequest


def _setup(tmp_path: Path):
    repo, clients, inventory, sales = build_services(tmp_path)
    cid = clients.add_client("João", "Silva", email="joao.silva@example.com")
    return repo, inventory, sales, cid


def test_single_item_sale_totals_and_decrements_stock(tmp_path: Path):
    repo, inventory, sales, cid = _setup(tmp_path)
    inventory.add_product("Laptop", 250000, 20, product_id="p1")

    sale = sales.create_sale(cid, [{"product_id": "p1", "quantity": 2}])

    assert sale.total_amount_in_cents == 500000
    assert stock_of(repo, "p1") == 18
    assert len(sale.items) == 1
    assert sale.items[0].price_in_cents == 250000
    assert sale.items[0].subtotal_in_cents == 500000


def test_two_product_sale_decrements_both(tmp_path: Path):
    repo, inventory, sales, cid = _setup(tmp_path)
    inventory.add_product("Mouse", 5000, 50, product_id="p1")
    inventory.add_product("Keyboard", 15000, 30, product_id="p2")

    sale = sales.create_sale(cid, [SaleLineItemRequest("p1", 1), SaleLineItemRequest("p2", 1)])

    assert sale.total_amount_in_cents == 20000
    assert stock_of(repo, "p1") == 49
    assert stock_of(repo, "p2") == 29


def test_total_is_exact_integer_sum_of_lines(tmp_path: Path):
    _repo, inventory, sales, cid = _setup(tmp_path)
    inventory.add_product("A", 1999, 100, product_id="a")
    inventory.add_product("B", 333, 100, product_id="b")
    inventory.add_product("C", 10, 100, product_id="c")

    sale = sales.create_sale(
        cid,
        [
            {"product_id": "a", "quantity": 3},
            {"product_id": "b", "quantity": 7},
            {"product_id": "c", "quantity": 9},
        ],
    )

    assert sale.total_amount_in_cents == 3 * 1999 + 7 * 333 + 9 * 10
    assert sale.total_amount_in_cents == sum(it.quantity * it.price_in_cents for it in sale.items)
    assert isinstance(sale.total_amount_in_cents, int)
    assert all(isinstance(it.price_in_cents, int) for it in sale.items)


def test_price_change_does_not_touch_recorded_sale(tmp_path: Path):
    _repo, inventory, sales, cid = _setup(tmp_path)
    inventory.add_product("Laptop", 250000, 10, product_id="p1")

    created = sales.create_sale(cid, [{"product_id": "p1", "quantity": 1}])
    inventory.update_product_price("p1", 280000)

    reread = sales.get_sale(created.id)
    assert inventory.get_product("p1").price_in_cents == 280000
    assert reread.total_amount_in_cents == 250000
    assert reread.items[0].price_in_cents == 250000
    assert reread == created


def test_later_sales_use_new_price_and_earlier_keep_old(tmp_path: Path):
    _repo, inventory, sales, cid = _setup(tmp_path)
    inventory.add_product("Laptop", 200000, 10, product_id="p1")

    first = sales.create_sale(cid, [{"product_id": "p1", "quantity": 1}])
    inventory.update_product_price("p1", 220000)
    second = sales.create_sale(cid, [{"product_id": "p1", "quantity": 1}])

    assert sales.get_sale(first.id).total_amount_in_cents == 200000
    assert sales.get_sale(second.id).total_amount_in_cents == 220000


def test_zero_price_promotional_item_is_allowed(tmp_path: Path):
    repo, inventory, sales, cid = _setup(tmp_path)
    inventory.add_product("Brinde", 0, 3, product_id="gift")
    inventory.add_product("Mouse", 5000, 3, product_id="p1")

    sale = sales.create_sale(cid, [{"product_id": "gift", "quantity": 1}, {"product_id": "p1", "quantity": 1}])

    assert sale.total_amount_in_cents == 5000
    assert stock_of(repo, "gift") == 2


def test_selling_the_exact_stock_leaves_zero(tmp_path: Path):
    repo, inventory, sales, cid = _setup(tmp_path)
    inventory.add_product("Laptop", 250000, 10, product_id="p1")

    sales.create_sale(cid, [{"product_id": "p1", "quantity": 10}])

    assert stock_of(repo, "p1") == 0


def test_sale_is_enriched_with_names_and_keeps_item_order(tmp_path: Path):
    _repo, inventory, sales, cid = _setup(tmp_path)
    inventory.add_product("Zebra", 100, 5, product_id="z")
    inventory.add_product("Apple", 200, 5, product_id="a")

    sale = sales.create_sale(cid, [{"product_id": "z", "quantity": 1}, {"product_id": "a", "quantity": 2}])

    assert sale.client_id == cid
    assert sale.client_name == "João Silva"
    assert [it.product_name for it in sale.items] == ["Zebra", "Apple"]
    assert [it.quantity for it in sale.items] == [1, 2]


def test_sale_date_defaults_to_commit_time(tmp_path: Path):
    _repo, inventory, sales, cid = _setup(tmp_path)
    inventory.add_product("Laptop", 250000, 10, product_id="p1")

    before = datetime.now(timezone.utc)
    sale = sales.create_sale(cid, [{"product_id": "p1", "quantity": 1}])
    after = datetime.now(timezone.utc)

    assert before <= sale.sale_date <= after
    assert before <= sale.created_at <= after


def test_explicit_sale_date_is_kept_and_converted_to_utc(tmp_path: Path):
    _repo, inventory, sales, cid = _setup(tmp_path)
    inventory.add_product("Laptop", 250000, 10, product_id="p1")
    when = datetime(2024, 1, 15, 9, 30, tzinfo=timezone(timedelta(hours=-3)))

    sale = sales.create_sale(cid, [{"product_id": "p1", "quantity": 1}], sale_date=when)

    assert sale.sale_date == when
    assert sale.sale_date.utcoffset() == timedelta(0)
    assert sales.get_sale(sale.id).sale_date == when


def test_returned_sale_is_immutable(tmp_path: Path):
    _repo, inventory, sales, cid = _setup(tmp_path)
    inventory.add_product("Laptop", 250000, 10, product_id="p1")
    sale = sales.create_sale(cid, [{"product_id": "p1", "quantity": 1}])

    with pytest.raises(FrozenInstanceError):
        sale.total_amount_in_cents = 1  # type: ignore[misc]
    with pytest.raises(FrozenInstanceError):
        sale.items[0].price_in_cents = 1  # type: ignore[misc]


def test_stored_sale_rows_reject_updates(tmp_path: Path):
    repo, inventory, sales, cid = _setup(tmp_path)
    inventory.add_product("Laptop", 250000, 10, product_id="p1")
    sale = sales.create_sale(cid, [{"product_id": "p1", "quantity": 1}])

    conn = repo._conn()
    cur = conn.cursor()
    with pytest.raises(Exception, match="immutable"):
        cur.execute("UPDATE sale_items SET price_in_cents = 1 WHERE sale_id = ?", (sale.id,))
    conn.rollback()
    conn.close()

    assert sales.get_sale(sale.id).items[0].price_in_cents == 250000

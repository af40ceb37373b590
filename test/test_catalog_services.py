from pathlib import Path

import pytest

from conftest import build_services

from bsm.domain.errors import NotFoundError, ValidationError


def test_product_roundtrip_and_price_update(tmp_path: Path):
    _repo, _clients, inventory, _sales = build_services(tmp_path)
    pid = inventory.add_product("  Laptop ", 250000, 4)

    inventory.update_product_price(pid, 199900)

    product = inventory.get_product(pid)
    assert product.name == "Laptop"
    assert (product.price_in_cents, product.stock_qty) == (199900, 4)


@pytest.mark.parametrize(
    "name,price,stock",
    [
        ("", 100, 1),
        ("Laptop", -1, 1),
        ("Laptop", 10.5, 1),
        ("Laptop", 100, -1),
        ("Laptop", 100, True),
    ],
)
def test_add_product_rejects_bad_fields(tmp_path: Path, name, price, stock):
    _repo, _clients, inventory, _sales = build_services(tmp_path)

    with pytest.raises(ValidationError):
        inventory.add_product(name, price, stock)


def test_unknown_product_lookups_raise_not_found(tmp_path: Path):
    _repo, _clients, inventory, _sales = build_services(tmp_path)

    with pytest.raises(NotFoundError):
        inventory.get_product("missing")
    with pytest.raises(NotFoundError):
        inventory.update_product_price("missing", 100)


def test_client_roundtrip(tmp_path: Path):
    _repo, clients, _inventory, _sales = build_services(tmp_path)
    cid = clients.add_client("João", "Silva", email=" joao@example.com ")

    client = clients.get_client(cid)

    assert client.full_name == "João Silva"
    assert client.email == "joao@example.com"


@pytest.mark.parametrize("first,last,email", [("", "Silva", None), ("João", " ", None), ("João", "Silva", "nope")])
def test_add_client_rejects_bad_fields(tmp_path: Path, first, last, email):
    _repo, clients, _inventory, _sales = build_services(tmp_path)

    with pytest.raises(ValidationError):
        clients.add_client(first, last, email=email)


def test_unknown_client_raises_not_found(tmp_path: Path):
    _repo, clients, _inventory, _sales = build_services(tmp_path)

    with pytest.raises(NotFoundError):
        clients.get_client("missing")

import pytest

from bsm.domain.errors import ValidationError
from bsm.domain.money import format_price, parse_price


@pytest.mark.parametrize(
    "cents,text",
    [
        (250000, "R$ 2.500,00"),
        (5, "R$ 0,05"),
        (0, "R$ 0,00"),
        (123456789, "R$ 1.234.567,89"),
        (-1999, "-R$ 19,99"),
    ],
)
def test_format_price(cents: int, text: str):
    assert format_price(cents) == text


@pytest.mark.parametrize(
    "text,cents",
    [
        ("R$ 2.500,00", 250000),
        ("2500", 250000),
        ("1234,56", 123456),
        ("1,5", 150),
        ("  R$0,99 ", 99),
        ("-R$ 19,99", -1999),
    ],
)
def test_parse_price(text: str, cents: int):
    assert parse_price(text) == cents


@pytest.mark.parametrize("text", ["", "abc", "1.23", "12,345", "R$ 1,00 reais", None])
def test_parse_price_rejects_garbage(text):
    with pytest.raises(ValidationError):
        parse_price(text)


@pytest.mark.parametrize("value", [12.5, "100", True, None])
def test_format_price_requires_integer_cents(value):
    with pytest.raises(ValidationError):
        format_price(value)

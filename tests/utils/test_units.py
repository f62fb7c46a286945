"""Tests for wei/ETH conversion and address helpers."""

from decimal import Decimal

import pytest

from src.utils.units import (
    chain_name,
    format_ether,
    format_price,
    is_address,
    parse_ether,
    same_address,
    short_address,
)

ADDRESS = "0x" + "a" * 40


class TestFormatEther:

    @pytest.mark.parametrize(
        "wei,expected",
        [
            (0, "0"),
            (10**18, "1"),
            (10 * 10**18, "10"),
            (3_200_000_000_000_000, "0.0032"),
            (1, "0.000000000000000001"),
        ],
    )
    def test_exact(self, wei, expected):
        assert format_ether(wei) == expected

    def test_huge_values_stay_exact(self):
        assert format_ether(2**128) == "340282366920938463463.374607431768211456"

    def test_fixed_decimals_truncate(self):
        assert format_ether(1_999_999_999_999_999_999, decimals=2) == "1.99"

    def test_price(self):
        assert format_price(3_219_000_000_000_000) == "0.0032"
        assert format_price(0) == "0.0000"


class TestParseEther:

    @pytest.mark.parametrize(
        "amount,wei",
        [("1", 10**18), ("0.006", 6 * 10**15), (2, 2 * 10**18), (Decimal("0.5"), 5 * 10**17)],
    )
    def test_valid(self, amount, wei):
        assert parse_ether(amount) == wei

    def test_sub_wei_precision_truncates(self):
        assert parse_ether("0.0000000000000000019") == 1

    @pytest.mark.parametrize("amount", ["abc", "-1", "NaN", "Infinity"])
    def test_invalid(self, amount):
        with pytest.raises(ValueError, match="Invalid ETH amount"):
            parse_ether(amount)


class TestAddresses:

    def test_is_address(self):
        assert is_address(ADDRESS)
        assert is_address("0x" + "AbCdEf0123" * 4)
        assert not is_address("0x123")
        assert not is_address(None)
        assert not is_address("alice.eth")

    def test_same_address_ignores_case(self):
        assert same_address(ADDRESS, ADDRESS.upper().replace("0X", "0x"))
        assert not same_address(ADDRESS, None)
        assert not same_address(ADDRESS, "0x" + "b" * 40)

    def test_short_address(self):
        assert short_address(ADDRESS) == "0xaaaa...aaaa"
        assert short_address("alice.eth") == "alice.eth"


@pytest.mark.parametrize(
    "chain_id,name",
    [(1, "Ethereum"), (8453, "Base"), (11155111, "Sepolia"), (84532, "Base Sepolia"), (10, "chain 10")],
)
def test_chain_name(chain_id, name):
    assert chain_name(chain_id) == name

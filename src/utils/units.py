"""Wei/ETH conversion and address helpers.

All amounts are integers in wei. Conversions go through Decimal so that
values far beyond 2**64 format exactly.
"""

import re
from decimal import ROUND_DOWN, Decimal, InvalidOperation, localcontext

WEI_PER_ETH = 10**18

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


def format_ether(wei: int, decimals: int | None = None) -> str:
    """Render a wei amount as an ETH string.

    Args:
        wei: Amount in wei.
        decimals: Fixed number of decimals (truncated). None renders the
            exact value with trailing zeros stripped.

    Returns:
        ETH amount as a string, e.g. "0.0032".
    """
    with localcontext() as ctx:
        ctx.prec = 120
        value = Decimal(wei) / Decimal(WEI_PER_ETH)
        if decimals is not None:
            quantum = Decimal(1).scaleb(-decimals)
            return str(value.quantize(quantum, rounding=ROUND_DOWN))
        return format(value.normalize(), "f")


def format_price(wei: int) -> str:
    """Price string shown to users: 4 decimal places."""
    return format_ether(wei, decimals=4)


def parse_ether(amount: str | int | float | Decimal) -> int:
    """Convert an ETH amount to wei.

    Raises:
        ValueError: If the amount is not a non-negative number.
    """
    try:
        value = Decimal(str(amount))
    except InvalidOperation as e:
        raise ValueError(f"Invalid ETH amount: {amount!r}") from e
    if not value.is_finite() or value < 0:
        raise ValueError(f"Invalid ETH amount: {amount!r}")
    with localcontext() as ctx:
        ctx.prec = 120
        return int((value * WEI_PER_ETH).to_integral_value(rounding=ROUND_DOWN))


def is_address(value: str | None) -> bool:
    return bool(value) and bool(_ADDRESS_RE.match(value))


def same_address(a: str | None, b: str | None) -> bool:
    """Case-insensitive address comparison (checksum casing is irrelevant)."""
    if not a or not b:
        return False
    return a.lower() == b.lower()


def short_address(address: str) -> str:
    """0x1234...abcd form for chat messages."""
    if not is_address(address):
        return address
    return f"{address[:6]}...{address[-4:]}"


CHAIN_NAMES = {1: "Ethereum", 8453: "Base", 11155111: "Sepolia", 84532: "Base Sepolia"}


def chain_name(chain_id: int) -> str:
    return CHAIN_NAMES.get(chain_id, f"chain {chain_id}")

"""USDC amount conversions.

Transfer requests carry human readable decimal strings (``"1.5"``),
contracts and programs take raw base units (``1_500_000``).
"""

from decimal import Decimal, InvalidOperation

from usdc_bridge.cctp.constants import USDC_DECIMALS
from usdc_bridge.cctp.errors import InvalidTransferRequest


def parse_units(amount: str | Decimal, decimals: int = USDC_DECIMALS) -> int:
    """Convert a decimal amount to raw token units.

    Example::

        assert parse_units("1.5") == 1_500_000

    :param amount:
        Decimal string or :py:class:`~decimal.Decimal`.

    :param decimals:
        Token decimals.

    :return:
        Amount in base units.

    :raise InvalidTransferRequest:
        Amount is not a number, negative or has more fractional digits than the token supports.
    """
    try:
        value = Decimal(amount.strip() if isinstance(amount, str) else amount)
    except InvalidOperation as e:
        raise InvalidTransferRequest(f"Amount {amount!r} is not a decimal number") from e

    if not value.is_finite():
        raise InvalidTransferRequest(f"Amount {amount!r} is not a finite number")

    if value < 0:
        raise InvalidTransferRequest(f"Amount {amount!r} is negative")

    scaled = value.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise InvalidTransferRequest(f"Amount {amount!r} has more than {decimals} decimal places")

    return int(scaled)


def format_units(raw_amount: int, decimals: int = USDC_DECIMALS) -> str:
    """Convert raw token units to a decimal string.

    Trailing zeros are dropped: ``1_500_000`` becomes ``"1.5"``, ``10_000_000`` becomes ``"10"``.
    """
    assert type(raw_amount) == int, f"Got {type(raw_amount)}: {raw_amount}"
    sign = "-" if raw_amount < 0 else ""
    whole, fraction = divmod(abs(raw_amount), 10**decimals)
    fraction_str = str(fraction).rjust(decimals, "0").rstrip("0")
    if fraction_str:
        return f"{sign}{whole}.{fraction_str}"
    return f"{sign}{whole}"


def calculate_max_fee(amount: int) -> int:
    """Max fee the burn is willing to pay for a transfer.

    We allow the fee to take everything but one base unit,
    so fast transfers are never held for an insufficient fee.

    :param amount:
        Burn amount in base units. Must be at least one unit.

    :raise InvalidTransferRequest:
        Amount is zero, which would give a negative fee.
    """
    if amount < 1:
        raise InvalidTransferRequest(f"Cannot burn {amount} base units, the minimum is 1")
    return amount - 1

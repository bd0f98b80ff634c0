"""Currency unit conversion.

Amounts are stored as integers in the currency's smallest unit (cro for TXC,
satoshi for BTC, wei for ETH, cents for USD). Exchange rates are stored as
fixed-point integers, rate x 10^8, so settlement never touches floats.
"""

from decimal import ROUND_HALF_UP, Decimal

CURRENCY_DECIMALS: dict[str, int] = {
    "TXC": 8,
    "BTC": 8,
    "LTC": 8,
    "ETH": 18,
    "USDC": 6,
    "USDT": 6,
    "USD": 2,
}

RATE_DECIMALS = 8
RATE_SCALE = 10**RATE_DECIMALS


def get_decimals(currency: str) -> int:
    """Number of decimal places between the whole unit and the smallest unit."""
    try:
        return CURRENCY_DECIMALS[currency.upper()]
    except KeyError as exc:
        raise ValueError(f"Unsupported currency: {currency}") from exc


def get_multiplier(currency: str) -> int:
    """Smallest units per whole unit (10^decimals)."""
    return 10 ** get_decimals(currency)


def from_smallest_unit(amount: int, currency: str) -> Decimal:
    """Convert an integer smallest-unit amount to a whole-unit Decimal."""
    return Decimal(int(amount)).scaleb(-get_decimals(currency))


def to_smallest_unit(amount: Decimal | int | str, currency: str) -> int:
    """Convert a whole-unit amount to the smallest unit, rounding half up."""
    value = Decimal(str(amount)).scaleb(get_decimals(currency))
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def format_currency(amount: int, currency: str, decimals: int | None = None) -> str:
    """Format a smallest-unit amount as a fixed-point string."""
    places = get_decimals(currency) if decimals is None else decimals
    quantum = Decimal(1).scaleb(-places)
    return str(from_smallest_unit(amount, currency).quantize(quantum, rounding=ROUND_HALF_UP))


def rate_to_stored_rate(rate: Decimal | int | str) -> int:
    """Convert a whole-unit rate (e.g. 2.88 USD per TXC) to its stored form."""
    value = Decimal(str(rate)).scaleb(RATE_DECIMALS)
    stored = int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))
    if stored <= 0:
        raise ValueError(f"Exchange rate must be positive, got {rate}")
    return stored


def stored_rate_to_rate(stored_rate: int) -> Decimal:
    """Convert a stored rate back to a whole-unit Decimal."""
    return Decimal(int(stored_rate)).scaleb(-RATE_DECIMALS)


def fiat_to_crypto(
    fiat_amount: int,
    stored_rate: int,
    crypto_currency: str,
    fiat_currency: str = "USD",
) -> int:
    """Convert smallest fiat units to smallest crypto units.

    ``stored_rate`` is the fiat price of one whole crypto unit, x 10^8.
    The result is truncated toward zero.
    """
    if stored_rate <= 0:
        raise ValueError("stored_rate must be positive")
    numerator = int(fiat_amount) * get_multiplier(crypto_currency) * RATE_SCALE
    denominator = int(stored_rate) * get_multiplier(fiat_currency)
    return numerator // denominator


def crypto_to_fiat(
    crypto_amount: int,
    stored_rate: int,
    crypto_currency: str,
    fiat_currency: str = "USD",
) -> int:
    """Convert smallest crypto units to smallest fiat units, truncated toward zero."""
    numerator = int(crypto_amount) * int(stored_rate) * get_multiplier(fiat_currency)
    denominator = get_multiplier(crypto_currency) * RATE_SCALE
    return numerator // denominator


def cro_to_txc(cro: int) -> Decimal:
    return from_smallest_unit(cro, "TXC")


def txc_to_cro(txc: Decimal | int | str) -> int:
    return to_smallest_unit(txc, "TXC")


def cents_to_dollars(cents: int) -> Decimal:
    return from_smallest_unit(cents, "USD")


def dollars_to_cents(dollars: Decimal | int | str) -> int:
    return to_smallest_unit(dollars, "USD")

"""Vietnamese Dong formatting."""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

CURRENCY_SYMBOL = "₫"


def format_vnd(amount) -> str:
    """Format ``amount`` as ``15.000.000 ₫`` (no decimals, ``.`` grouping)."""

    if amount is None or amount == "":
        return f"0 {CURRENCY_SYMBOL}"
    try:
        value = Decimal(str(amount)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError):
        return f"0 {CURRENCY_SYMBOL}"
    sign = "-" if value < 0 else ""
    grouped = f"{abs(int(value)):,}".replace(",", ".")
    return f"{sign}{grouped} {CURRENCY_SYMBOL}"

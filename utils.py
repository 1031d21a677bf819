from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Tuple

from errors import ValidationError


def format_balance(planck: int, decimals: int = 8) -> str:
    """
    Format an integer planck balance for display.
    Zero shows as "0.0"; values below one whole unit left-pad the fraction
    to the unit's decimal width ("0.00001234" for 1234 at 8 decimals).
    """
    if planck < 0:
        raise ValueError("Balance cannot be negative")
    if planck == 0:
        return "0.0"
    if decimals == 0:
        return str(planck)
    scale = 10 ** decimals
    whole, fraction = divmod(planck, scale)
    return f"{whole}.{fraction:0{decimals}d}"


def format_amount(planck: int) -> str:
    """Planck amount with thousands separators, as shown in the activity log."""
    return f"{planck:,}"


def unit_values(planck: int, decimals: int, symbol: str) -> Tuple[str, str]:
    """Return the amount expressed in whole units and in milli-units."""
    amount = Decimal(planck)
    unit_places = max(decimals, 0)
    milli_places = max(decimals - 3, 0)
    unit = amount.scaleb(-decimals)
    milli = amount.scaleb(3 - decimals)
    return (
        f"{unit:.{unit_places}f} {symbol}",
        f"{milli:.{milli_places}f} m{symbol}",
    )


@dataclass(frozen=True)
class TransferRow:
    label: str
    recipient: str
    amount: int
    unlock_date: str


def parse_transfer_row(text: str) -> Optional[TransferRow]:
    """
    Parse a row pasted from a spreadsheet: label, recipient, amount, date
    separated by tabs. Returns None if the text has fewer than four columns.
    """
    values = [value.strip() for value in text.split("\t")]
    if len(values) < 4:
        return None
    label, recipient, amount_str, unlock_date = values[:4]
    cleaned = amount_str.replace(",", "").replace("_", "")
    if not cleaned.isdigit():
        raise ValidationError(f"Amount must be a non-negative integer in planck, got {amount_str!r}")
    return TransferRow(label=label, recipient=recipient, amount=int(cleaned), unlock_date=unlock_date)

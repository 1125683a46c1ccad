# GearHire - Event Equipment Rental and Booking Engine
# Copyright (C) 2025 The GearHire Authors
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program.  If not, see <https://www.gnu.org/licenses/>.

"""Utility helper functions."""

import re
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional, Union

CENTS = Decimal("0.01")


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, matching stored timestamps."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Convert an aware datetime to naive UTC. Naive values pass through."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def sanitize_input(text: Optional[str], max_length: Optional[int] = None) -> str:
    """Sanitize user input by stripping HTML tags and limiting length.

    Args:
        text: Input text to sanitize.
        max_length: Maximum allowed length (truncates if exceeded).

    Returns:
        Sanitized string.
    """
    if text is None:
        return ""

    # Remove HTML tags
    clean = re.sub(r"<[^>]+>", "", str(text))

    # Normalize whitespace
    clean = " ".join(clean.split())

    # Truncate if needed
    if max_length and len(clean) > max_length:
        clean = clean[:max_length]

    return clean


def clean_optional(text: Optional[str], max_length: Optional[int] = None) -> Optional[str]:
    """Like sanitize_input, but keeps None and blank input as None."""
    clean = sanitize_input(text, max_length)
    return clean or None


def to_money(value: Union[Decimal, int, float, str, None]) -> Decimal:
    """Convert a value to a Decimal rounded to cents.

    Args:
        value: Amount as Decimal, int, float or numeric string.

    Returns:
        Decimal quantized to two places. None becomes zero.

    Raises:
        ValueError: If the value is not numeric.
    """
    if value is None:
        return Decimal("0.00")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"Invalid amount: {value!r}") from e
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def format_money(amount: Decimal, symbol: str = "") -> str:
    """Format an amount for messages, e.g. ``R1250.00``."""
    return f"{symbol}{to_money(amount):.2f}"


def isoformat(value) -> Optional[str]:
    """ISO string for a date/datetime, None passes through."""
    return value.isoformat() if value else None


def money_str(value: Optional[Decimal]) -> Optional[str]:
    """Serialize a money column for JSON output."""
    if value is None:
        return None
    return f"{to_money(value):.2f}"

"""
Numeric Coercion — wire numbers to exact integers and display floats
====================================================================

Upstream payloads carry token amounts as digit strings, JSON numbers or
big-number objects (anything whose ``str()`` is a digit string). Exact
amounts go through :func:`coerce_integer`, which keeps full precision on
the digit-string path; :func:`coerce_float` is the approximate path for
display-only values such as prices and USD totals.

  human = raw / 10^scale
"""

import math
import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable, Optional

UNSIGNED_DIGITS = re.compile(r"\d+")


def coerce_integer(value: Any) -> Optional[int]:
    """
    Convert a loosely-typed wire value to an exact integer.

    Accepted: ``int``, integer-valued finite ``float`` (approximate for
    magnitudes beyond 2^53), integral ``Decimal``, unsigned digit strings,
    and objects whose string form is an unsigned digit string.

    Examples:
        >>> coerce_integer("123456789012345678901234567890")
        123456789012345678901234567890
        >>> coerce_integer(42.0)
        42
        >>> coerce_integer("12.5") is None
        True
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value) or not value.is_integer():
            return None
        return int(value)
    if isinstance(value, Decimal):
        if not value.is_finite() or value != value.to_integral_value():
            return None
        return int(value)
    if isinstance(value, str):
        s = value.strip()
        return int(s) if UNSIGNED_DIGITS.fullmatch(s) else None
    try:
        s = str(value).strip()
    except Exception:  # noqa: BLE001
        return None
    return int(s) if UNSIGNED_DIGITS.fullmatch(s) else None


def coerce_float(value: Any) -> Optional[float]:
    """Approximate numeric value for display (``None`` if not finite)."""
    if value is None or isinstance(value, bool):
        return None
    try:
        n = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    return n if math.isfinite(n) else None


def coerce_scale(value: Any) -> Optional[int]:
    """
    Decimals of an asset, or ``None`` when absent or negative.

    Examples:
        >>> coerce_scale("9")
        9
        >>> coerce_scale(-1) is None
        True
    """
    scale = coerce_integer(value)
    return scale if scale is not None and scale >= 0 else None


def to_human_amount(raw: Optional[int], scale: Optional[int]) -> Optional[float]:
    """
    Scale a raw integer amount by its decimals.

    Examples:
        >>> to_human_amount(123456789, 6)
        123.456789
        >>> to_human_amount(None, 6) is None
        True
    """
    if raw is None or scale is None:
        return None
    try:
        n = raw / (10 ** scale)
    except OverflowError:
        return None
    return n if math.isfinite(n) else None


def is_finite_number(value: Any) -> bool:
    """True for real ints/floats that are finite (bools excluded)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def pick_first_present(record: Any, keys: Iterable[str]) -> Any:
    """
    Return the value of the first key that is present and not ``None``.

    Scans one flat record in priority order and stops at the first hit —
    never merges or sums across keys. Mappings are read by key, other
    objects by attribute.

    Examples:
        >>> pick_first_present({"a": None, "b": 5, "c": 9}, ["a", "b", "c"])
        5
    """
    if record is None:
        return None
    is_mapping = hasattr(record, "get") and hasattr(record, "keys")
    for key in keys:
        if is_mapping:
            value = record.get(key)
        else:
            value = getattr(record, key, None)
        if value is not None:
            return value
    return None


@dataclass(frozen=True)
class Quantity:
    """Exact amount of a fungible asset: ``raw / 10^scale``."""

    raw: int
    scale: int

    def __post_init__(self):
        if self.scale < 0:
            raise ValueError(f"scale must be non-negative, got {self.scale}")

    @property
    def human_value(self) -> Optional[float]:
        return to_human_amount(self.raw, self.scale)

    @classmethod
    def from_wire(cls, raw: Any, scale: Optional[int]) -> Optional["Quantity"]:
        """Build from an untyped raw amount; ``None`` when either part is unknown or invalid."""
        magnitude = coerce_integer(raw)
        if magnitude is None or scale is None or scale < 0:
            return None
        return cls(magnitude, scale)

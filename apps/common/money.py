from decimal import ROUND_HALF_UP, Decimal
from fractions import Fraction

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_decimal(value):
    if isinstance(value, Decimal):
        return value
    if isinstance(value, Fraction):
        return Decimal(value.numerator) / Decimal(value.denominator)
    return Decimal(str(value))


def to_fraction(value):
    if isinstance(value, Fraction):
        return value
    return Fraction(to_decimal(value))


def quantize_money(value):
    """Round a Decimal, Fraction, int or str amount to cents, half up."""
    if isinstance(value, Fraction):
        scaled = abs(value) * 100
        cents = scaled.numerator // scaled.denominator
        if scaled - cents >= Fraction(1, 2):
            cents += 1
        if value < 0:
            cents = -cents
        return (Decimal(cents) / 100).quantize(CENT)
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)

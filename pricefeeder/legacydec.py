"""Fixed-point decimal with 18 digits of precision and round-half-even rounding."""

from __future__ import annotations

from dataclasses import dataclass

PRECISION = 18
_ONE_RAW = 10**PRECISION
_HALF_RAW = _ONE_RAW // 2
_MAX_BIT_LEN = 256 + 60
_MAX_APPROX_ROOT_ITERATIONS = 300
_DIGITS = frozenset("0123456789")


class DecError(ValueError):
    """Raised when a decimal string cannot be parsed."""


def _chop_precision_and_round(value: int) -> int:
    """Remove PRECISION digits, rounding half to even, symmetric around zero."""
    if value < 0:
        return -_chop_precision_and_round(-value)
    quo, rem = divmod(value, _ONE_RAW)
    if rem < _HALF_RAW:
        return quo
    if rem > _HALF_RAW:
        return quo + 1
    return quo if quo % 2 == 0 else quo + 1


def _trunc_div(numerator: int, denominator: int) -> int:
    """Integer division truncating toward zero."""
    quo = abs(numerator) // abs(denominator)
    return -quo if (numerator < 0) != (denominator < 0) else quo


@dataclass(frozen=True, order=True)
class LegacyDec:
    """A signed decimal stored as an integer scaled by 10**18."""

    raw: int

    def __post_init__(self) -> None:
        if self.raw.bit_length() > _MAX_BIT_LEN:
            raise OverflowError("decimal out of range")

    @classmethod
    def from_str(cls, text: str) -> LegacyDec:
        """Parse a decimal string such as '-12.345'."""
        if not text:
            raise DecError("decimal string cannot be empty")
        body = text
        negative = body.startswith("-")
        if negative:
            body = body[1:]
        parts = body.split(".")
        if len(parts) > 2:
            raise DecError(f"invalid decimal string: {text!r}")
        int_part = parts[0]
        dec_part = ""
        if len(parts) == 2:
            dec_part = parts[1]
            if not dec_part or not int_part:
                raise DecError(f"invalid decimal length: {text!r}")
        if not int_part:
            raise DecError(f"invalid decimal string: {text!r}")
        if len(dec_part) > PRECISION:
            raise DecError(
                f"value {text!r} exceeds max precision by "
                f"{len(dec_part) - PRECISION} decimal places"
            )
        digits = int_part + dec_part
        if not set(digits) <= _DIGITS:
            raise DecError(f"failed to set decimal string: {text!r}")
        value = int(digits + "0" * (PRECISION - len(dec_part)))
        if value.bit_length() > _MAX_BIT_LEN:
            raise DecError(f"decimal out of range: {text!r}")
        return cls(-value if negative else value)

    @classmethod
    def from_int(cls, value: int) -> LegacyDec:
        return cls(value * _ONE_RAW)

    @classmethod
    def zero(cls) -> LegacyDec:
        return cls(0)

    @classmethod
    def one(cls) -> LegacyDec:
        return cls(_ONE_RAW)

    @classmethod
    def smallest(cls) -> LegacyDec:
        """The smallest positive representable value, 10**-18."""
        return cls(1)

    def is_zero(self) -> bool:
        return self.raw == 0

    @property
    def is_negative(self) -> bool:
        return self.raw < 0

    def __add__(self, other: object) -> LegacyDec:
        if not isinstance(other, LegacyDec):
            return NotImplemented
        return LegacyDec(self.raw + other.raw)

    def __sub__(self, other: object) -> LegacyDec:
        if not isinstance(other, LegacyDec):
            return NotImplemented
        return LegacyDec(self.raw - other.raw)

    def __mul__(self, other: object) -> LegacyDec:
        if not isinstance(other, LegacyDec):
            return NotImplemented
        return LegacyDec(_chop_precision_and_round(self.raw * other.raw))

    def __truediv__(self, other: object) -> LegacyDec:
        if not isinstance(other, LegacyDec):
            return NotImplemented
        return self.quo(other)

    def __neg__(self) -> LegacyDec:
        return LegacyDec(-self.raw)

    def __abs__(self) -> LegacyDec:
        return LegacyDec(abs(self.raw))

    def quo(self, other: LegacyDec) -> LegacyDec:
        """Divide, rounding the last digit half to even."""
        if other.raw == 0:
            raise ZeroDivisionError("division by zero")
        scaled = self.raw * _ONE_RAW * _ONE_RAW
        return LegacyDec(_chop_precision_and_round(_trunc_div(scaled, other.raw)))

    def quo_int(self, value: int) -> LegacyDec:
        """Divide by an integer, truncating toward zero."""
        if value == 0:
            raise ZeroDivisionError("division by zero")
        return LegacyDec(_trunc_div(self.raw, value))

    def power(self, exponent: int) -> LegacyDec:
        if exponent == 0:
            return LegacyDec.one()
        base = self
        acc = LegacyDec.one()
        remaining = exponent
        while remaining > 1:
            if remaining % 2:
                acc = acc * base
            remaining //= 2
            base = base * base
        return base * acc

    def approx_root(self, root: int) -> LegacyDec:
        """Approximate the given root with Newton's method."""
        if self.is_negative:
            return -((-self).approx_root(root))
        one = LegacyDec.one()
        if root == 1 or self.is_zero() or self == one:
            return self
        if root == 0:
            return one
        smallest = LegacyDec.smallest()
        guess = one
        delta = one
        iterations = 0
        while abs(delta) > smallest and iterations < _MAX_APPROX_ROOT_ITERATIONS:
            prev = guess.power(root - 1)
            if prev.is_zero():
                prev = smallest
            delta = (self.quo(prev) - guess).quo_int(root)
            guess = guess + delta
            iterations += 1
        return guess

    def approx_sqrt(self) -> LegacyDec:
        return self.approx_root(2)

    def __str__(self) -> str:
        whole, frac = divmod(abs(self.raw), _ONE_RAW)
        sign = "-" if self.raw < 0 else ""
        return f"{sign}{whole}.{frac:0{PRECISION}d}"

    def __repr__(self) -> str:
        return f"LegacyDec('{self}')"
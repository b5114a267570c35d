"""Money value object - a fixed-point amount with its currency."""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")


@dataclass(frozen=True)
class Money:
    """
    Immutable monetary amount.

    Attributes:
        amount: Decimal amount, quantized to two decimal places.
        currency_code: ISO 4217 code (e.g. SGD, USD).
    """

    amount: Decimal
    currency_code: str

    def __post_init__(self) -> None:
        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, "amount", Decimal(str(self.amount)))
        object.__setattr__(self, "amount", self.amount.quantize(CENT, rounding=ROUND_HALF_UP))
        object.__setattr__(self, "currency_code", self.currency_code.upper())

        if len(self.currency_code) != 3:
            raise ValueError(f"currency_code must have 3 characters: {self.currency_code}")

        if self.amount <= 0:
            raise ValueError(f"amount must be positive: {self.amount}")

    def __str__(self) -> str:
        return f"{self.amount:.2f} {self.currency_code}"

    def to_minor_units(self) -> int:
        """Amount in cents, as the payment gateway expects it."""
        return int((self.amount * 100).to_integral_value(rounding=ROUND_HALF_UP))

    @classmethod
    def from_minor_units(cls, cents: int, currency_code: str) -> "Money":
        return cls(amount=Decimal(cents) / 100, currency_code=currency_code)

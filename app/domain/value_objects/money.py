"""Value Object Money - an amount in integer minor units with its currency."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Money:
    """
    Immutable monetary amount.

    Attributes:
        amount_minor: Amount in minor units (cents, bani).
        currency_code: Lowercase ISO 4217 code, as the payment processor expects it.
    """

    amount_minor: int
    currency_code: str

    def __post_init__(self) -> None:
        if not isinstance(self.amount_minor, int) or isinstance(self.amount_minor, bool):
            raise TypeError(f"amount_minor must be an int: {self.amount_minor!r}")
        if len(self.currency_code) != 3:
            raise ValueError(f"currency_code must have 3 characters: {self.currency_code}")
        if self.amount_minor < 0:
            raise ValueError(f"amount_minor cannot be negative: {self.amount_minor}")
        object.__setattr__(self, "currency_code", self.currency_code.lower())

    def __add__(self, other: "Money") -> "Money":
        if not isinstance(other, Money):
            raise TypeError(f"Cannot add Money and {type(other)}")
        if self.currency_code != other.currency_code:
            raise ValueError(
                f"Cannot add amounts in different currencies: "
                f"{self.currency_code} vs {other.currency_code}"
            )
        return Money(self.amount_minor + other.amount_minor, self.currency_code)

    def times(self, quantity: int) -> "Money":
        return Money(self.amount_minor * quantity, self.currency_code)

    def is_zero(self) -> bool:
        return self.amount_minor == 0

    def __str__(self) -> str:
        return f"{self.amount_minor / 100:.2f} {self.currency_code.upper()}"

    @classmethod
    def zero(cls, currency_code: str = "ron") -> "Money":
        return cls(amount_minor=0, currency_code=currency_code)

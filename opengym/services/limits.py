"""
Optional numeric limits: game capacity, guests per participant, waitlist size.

A limit is either Unlimited or Limited(n) with n >= 0. Storage keeps NULL for
unlimited and the bound otherwise.
"""

from dataclasses import dataclass
from typing import Optional, Union


@dataclass(frozen=True)
class Unlimited:
    def allows(self, amount: int) -> bool:
        return True

    def __str__(self) -> str:
        return "unlimited"


@dataclass(frozen=True)
class Limited:
    n: int

    def __post_init__(self):
        if self.n < 0:
            raise ValueError(f"limit must be non-negative, got {self.n}")

    def allows(self, amount: int) -> bool:
        return amount <= self.n

    def __str__(self) -> str:
        return str(self.n)


Limit = Union[Unlimited, Limited]

UNLIMITED = Unlimited()


def limit_from_column(value: Optional[int]) -> Limit:
    if value is None:
        return UNLIMITED
    return Limited(value)

"""
Checkout inputs: the cart snapshot plus customer contact and shipping address.

A CartSnapshot is captured once when checkout starts (see
services/catalog_service.build_snapshot). Unit prices are frozen at that
moment so later catalogue price edits never reach an in-flight order.
"""
from dataclasses import dataclass


@dataclass(frozen=True)
class CartLine:
    artwork_id: str
    quantity: int
    unit_price_minor: int
    title: str = ""

    @property
    def line_total_minor(self) -> int:
        return self.quantity * self.unit_price_minor


@dataclass(frozen=True)
class CartSnapshot:
    lines: tuple[CartLine, ...]
    currency: str

    @classmethod
    def of(cls, lines, currency: str) -> "CartSnapshot":
        return cls(lines=tuple(lines), currency=currency.upper())

    @property
    def is_empty(self) -> bool:
        return not self.lines

    @property
    def artwork_ids(self) -> list[str]:
        """Distinct artwork ids in cart order."""
        return list(dict.fromkeys(line.artwork_id for line in self.lines))


@dataclass(frozen=True)
class CustomerContact:
    email: str
    name: str | None = None
    phone: str | None = None


@dataclass(frozen=True)
class ShippingAddress:
    first_name: str
    last_name: str
    address: str
    city: str
    postal_code: str
    country: str
    phone: str | None = None

"""
Identity collaborator contract.

Authentication and account management live outside the booking engine; the
engine only reads whether a customer may book.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Protocol


@dataclass(frozen=True)
class CustomerIdentity:
    customer_id: str
    email_verified: bool
    is_active: bool = True


class IdentityProvider(Protocol):
    def get_customer(self, customer_id: str) -> Optional[CustomerIdentity]:
        ...


class StaticIdentityProvider:
    """Identity lookups from a fixed set of customers (local runs and tests)."""

    def __init__(self, customers: Iterable[CustomerIdentity] = ()):
        self._customers: Dict[str, CustomerIdentity] = {c.customer_id: c for c in customers}

    def add(self, customer: CustomerIdentity) -> None:
        self._customers[customer.customer_id] = customer

    def get_customer(self, customer_id: str) -> Optional[CustomerIdentity]:
        return self._customers.get(customer_id)

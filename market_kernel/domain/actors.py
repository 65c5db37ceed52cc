"""Acting identity supplied by the identity/role provider."""

from dataclasses import dataclass
from enum import Enum
from uuid import UUID


class ActorRole(str, Enum):
    CUSTOMER = "customer"
    SELLER = "seller"
    MANAGER = "manager"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


STAFF_ROLES = frozenset(
    {ActorRole.SELLER, ActorRole.MANAGER, ActorRole.ADMIN, ActorRole.SUPER_ADMIN}
)

# Roles whose discounts are bounded only by the order total.
UNCAPPED_DISCOUNT_ROLES = frozenset(
    {ActorRole.MANAGER, ActorRole.ADMIN, ActorRole.SUPER_ADMIN}
)


@dataclass(frozen=True)
class Actor:
    """The user on whose behalf an operation runs."""

    actor_id: UUID
    role: ActorRole

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES

    @classmethod
    def customer(cls, customer_id: UUID) -> "Actor":
        return cls(actor_id=customer_id, role=ActorRole.CUSTOMER)

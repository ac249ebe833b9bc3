from enum import Enum


class EntityKind(str, Enum):
    ORDER = "Order"
    CUSTOMER = "Customer"
    PRODUCT = "Product"

    @property
    def slug(self) -> str:
        return self.value.lower()

    @property
    def plural(self) -> str:
        return f"{self.slug}s"

    @classmethod
    def from_slug(cls, value: str) -> "EntityKind":
        normalized = (value or "").strip().lower()
        for kind in cls:
            if kind.slug == normalized:
                return kind
        available = ", ".join(kind.slug for kind in cls)
        raise ValueError(f"Unknown entity type '{value}'. Available: {available}")


# Full backfill walks kinds in this order.
BACKFILL_ORDER: tuple[EntityKind, ...] = (
    EntityKind.ORDER,
    EntityKind.CUSTOMER,
    EntityKind.PRODUCT,
)

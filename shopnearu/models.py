"""
Domain models for shop discovery.

Pure data classes with no HTTP or presentation dependencies.
Records returned by the API are immutable; EnrichedShop is the join of a
summary and its optional detail and is replaced, not mutated, on update.
"""
from __future__ import annotations

import dataclasses
import logging

_LOGGER = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class Position:
    """A captured geographic position in decimal degrees."""

    latitude: float
    longitude: float


@dataclasses.dataclass(frozen=True)
class ShopSummary:
    """Minimal shop record returned by a radius query."""

    id: int
    name: str
    address: str
    position: Position
    distance_meters: float = 0.0


@dataclasses.dataclass(frozen=True)
class ShopDetail:
    """
    Authenticated per-shop metadata.

    A missing detail means "unknown"; a detail with subscriber_count=0 means
    the shop is known to have no subscribers.
    """

    shop_id: int
    subscriber_count: int = 0
    is_subscribed: bool = False

    def __post_init__(self) -> None:
        if self.subscriber_count < 0:
            _LOGGER.warning(
                "Negative subscriber count %s for shop %s, clamping to 0",
                self.subscriber_count, self.shop_id,
            )
            object.__setattr__(self, "subscriber_count", 0)


@dataclasses.dataclass(frozen=True)
class EnrichedShop:
    """Render unit: a summary plus its detail when one is known."""

    summary: ShopSummary
    detail: ShopDetail | None = None

    @property
    def id(self) -> int:
        return self.summary.id


@dataclasses.dataclass(frozen=True)
class User:
    id: int
    name: str
    email: str


@dataclasses.dataclass(frozen=True)
class Session:
    """Explicit auth context passed to every authenticated operation."""

    user: User | None = None
    token: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None


ANONYMOUS = Session()


@dataclasses.dataclass(frozen=True)
class SubscribedShop:
    """A shop the viewer is subscribed to, as listed by the subscriptions endpoint."""

    id: int
    name: str
    owner_name: str
    type: str
    address: str
    position: Position
    subscriber_count: int
    is_open: bool


@dataclasses.dataclass(frozen=True)
class CatalogProduct:
    id: int
    name: str
    brand: str
    category: str
    description: str = ""
    image_url: str = ""


@dataclasses.dataclass(frozen=True)
class ShopProduct:
    """A catalog product offered by one shop."""

    id: int
    shop_id: int
    catalog_id: int
    price: float
    stock: int
    is_available: bool
    discount: float
    catalog_product: CatalogProduct | None = None
    shop_name: str | None = None

"""
Domain: sellable bundles and their price tiers.

A bundle carries nine price points: three platform groups (shopee, tiktok,
normal) times three customer categories. The minimum acceptable sale price of
an order is the price point for its platform group and category.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Mapping, Optional

from .customer import CustomerCategory
from .order import Platform

PRICE_GROUPS = ("normal", "shopee", "tiktok")


@dataclass(frozen=True, slots=True)
class Bundle:
    bundle_id: str
    name: str
    is_active: bool
    units: int
    # keyed by (price group, category)
    prices: Mapping[tuple[str, CustomerCategory], Decimal] = field(default_factory=dict)

    def minimum_price(self, platform: Platform, category: CustomerCategory) -> Decimal:
        return self.prices.get((platform.price_group, category), Decimal("0"))


class BundleCatalog:
    """
    Read-only view over the active bundles.

    Loaded once per request and handed to the orchestrator; nothing in the
    order core mutates it.
    """

    def __init__(self, bundles: Iterable[Bundle]) -> None:
        self._bundles = [b for b in bundles if b.is_active]

    def __len__(self) -> int:
        return len(self._bundles)

    def find(self, product: str) -> Optional[Bundle]:
        """
        Find a bundle by name: exact (case-insensitive) match first, then the
        first bundle whose name contains the given text.
        """

        needle = (product or "").strip().lower()
        if not needle:
            return None
        for bundle in self._bundles:
            if bundle.name.lower() == needle:
                return bundle
        for bundle in self._bundles:
            if needle in bundle.name.lower():
                return bundle
        return None

    def minimum_price(self, product: str, platform: Platform, category: CustomerCategory) -> Decimal:
        bundle = self.find(product)
        if bundle is None:
            return Decimal("0")
        return bundle.minimum_price(platform, category)

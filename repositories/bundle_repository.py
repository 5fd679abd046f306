"""
Bundle repository.

Loads the active bundles and their nine price points into a read-only
`BundleCatalog`.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Mapping

from domain.bundle import PRICE_GROUPS, Bundle, BundleCatalog
from domain.customer import CustomerCategory
from repositories.store import Store

_BUNDLES_TABLE: str = "bundles"


def _row_to_bundle(row: Mapping[str, Any]) -> Bundle:
    """
    Convert a bundles row.

    Columns are named `price_<group>_<np|ep|ec>`. Rows that predate the
    per-category split only carry `price_<group>`, which is used for every
    category of that group.
    """

    prices: dict[tuple[str, CustomerCategory], Decimal] = {}
    for group in PRICE_GROUPS:
        fallback = row.get(f"price_{group}") or 0
        for category in CustomerCategory:
            value = row.get(f"price_{group}_{category.value.lower()}")
            prices[(group, category)] = Decimal(str(value if value is not None else fallback))

    return Bundle(
        bundle_id=str(row["id"]),
        name=str(row["name"]),
        is_active=bool(row.get("is_active", True)),
        units=int(row.get("units") or 1),
        prices=prices,
    )


def load_catalog(store: Store) -> BundleCatalog:
    rows = store.query(_BUNDLES_TABLE, {"is_active": True}, order_by="name")
    return BundleCatalog(_row_to_bundle(row) for row in rows)


__all__ = ["load_catalog"]

"""
seed_data.py

Known-good starting catalog for a three-clinic chain. Used when the
persistent store is empty or cannot be read.

Entities:
- branches, suppliers, users (no credentials), products with batches,
  a year of daily usage per branch and monthly price drift

Generation is deterministic for a given (as_of, seed) pair.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Dict, List, Optional, Tuple

from .models import (
    Batch,
    Branch,
    HistoricalPrice,
    HistoricalUsage,
    Product,
    StockLevel,
    Supplier,
    User,
)

# -----------------------------
# Reference data
# -----------------------------

BRANCHES: List[Tuple[str, str]] = [
    ("branch-1", "Downtown"),
    ("branch-2", "Westside"),
    ("branch-3", "North End"),
]

SUPPLIERS: List[Tuple[str, str, str, bool]] = [
    ("sup-1", "Henry Dental Supply", "orders@henrydental.example", True),
    ("sup-2", "OralCare Distributors", "sales@oralcare.example", False),
    ("sup-3", "Sterilux Medical", "contact@sterilux.example", True),
]

USERS: List[Tuple[str, str, str, str, Optional[str]]] = [
    ("user-1", "Alex Johnson", "admin", "Admin", None),
    ("user-2", "Maria Garcia", "maria", "Staff", "branch-1"),
    ("user-3", "Sam Chen", "sam", "Staff", "branch-2"),
    ("user-4", "Priya Patel", "priya", "Staff", "branch-3"),
]


@dataclass
class ProductSeed:
    id: str
    name: str
    supplier_id: str
    min_stock_level: int
    purchase_price: float
    # per branch: list of (quantity, days until expiry or None, days since receipt)
    batches: Dict[str, List[Tuple[int, Optional[int], int]]]
    # mean daily usage per branch
    base_usage: Dict[str, int] = field(default_factory=dict)


PRODUCTS: List[ProductSeed] = [
    ProductSeed(
        "prod-1", "Nitrile Examination Gloves (box of 100)", "sup-1", 50, 6.50,
        {"branch-1": [(60, 400, 20), (25, 120, 60)], "branch-2": [(150, 400, 20)], "branch-3": [(40, 365, 35)]},
        {"branch-1": 10, "branch-2": 15, "branch-3": 5},
    ),
    ProductSeed(
        "prod-2", "Lidocaine 2% Cartridges (50)", "sup-2", 100, 38.00,
        {"branch-1": [(120, 240, 10)], "branch-2": [(200, 240, 10)], "branch-3": [(90, 25, 150)]},
        {"branch-1": 20, "branch-2": 25, "branch-3": 10},
    ),
    ProductSeed(
        "prod-3", "Composite Resin Syringe A2", "sup-1", 40, 15.00,
        {"branch-1": [(30, 12, 300)], "branch-2": [(50, 45, 200)], "branch-3": [(75, 90, 120)]},
        {"branch-1": 8, "branch-2": 12, "branch-3": 18},
    ),
    ProductSeed(
        "prod-4", "Disposable Prophy Angles (144)", "sup-3", 50, 22.00,
        {"branch-1": [(60, None, 30)], "branch-2": [(25, None, 30)], "branch-3": [(100, None, 45)]},
        {"branch-1": 12, "branch-2": 20, "branch-3": 15},
    ),
    ProductSeed(
        "prod-5", "Alginate Impression Material (1 lb)", "sup-2", 200, 8.00,
        {"branch-1": [(250, 150, 40)], "branch-2": [(300, 150, 40)], "branch-3": [(180, 180, 25)]},
        {"branch-1": 5, "branch-2": 8, "branch-3": 4},
    ),
]


@dataclass
class SeedDataset:
    branches: List[Branch]
    suppliers: List[Supplier]
    users: List[User]
    products: List[Product]


# -----------------------------
# Generators
# -----------------------------

def _usage_series(rng: random.Random, base: int, days: int) -> List[int]:
    return [max(0, base + rng.randint(-3, 3)) for _ in range(days)]


def _price_series(rng: random.Random, base_price: float, as_of: date, days: int) -> List[HistoricalPrice]:
    prices: List[HistoricalPrice] = []
    current = base_price
    for i in range(days, 0, -1):
        # Price changes roughly monthly, up to 10%
        if i > 1 and i % 30 == 0:
            current = max(0.01, current + (rng.random() - 0.45) * base_price * 0.1)
        prices.append(HistoricalPrice(date=as_of - timedelta(days=i), price=round(current, 2)))
    return prices


def _product(rng: random.Random, entry: ProductSeed, as_of: date, days: int) -> Product:
    stock_levels = []
    for branch_id, batches in entry.batches.items():
        stock_levels.append(StockLevel(
            branch_id=branch_id,
            batches=[
                Batch(
                    batch_id=f"{entry.id}-{branch_id}-{n + 1}",
                    quantity=qty,
                    expiry_date=as_of + timedelta(days=expires_in) if expires_in is not None else None,
                    date_received=as_of - timedelta(days=received_ago),
                )
                for n, (qty, expires_in, received_ago) in enumerate(batches)
            ],
        ))
    return Product(
        id=entry.id,
        name=entry.name,
        supplier_id=entry.supplier_id,
        min_stock_level=entry.min_stock_level,
        purchase_price=entry.purchase_price,
        stock_levels=stock_levels,
        historical_usage=[
            HistoricalUsage(branch_id=branch_id, usage=_usage_series(rng, base, days))
            for branch_id, base in entry.base_usage.items()
        ],
        historical_prices=_price_series(rng, entry.purchase_price, as_of, days),
    )


def build_seed_dataset(as_of: Optional[date] = None, seed: int = 42, days: int = 365) -> SeedDataset:
    """Build the fallback catalog.

    Args:
        as_of (date, optional): Date the batches' expiry/receipt offsets are relative to. Defaults to today.
        seed (int): Random seed for usage and price series.
        days (int): Length of the usage and price history.
    Returns:
        SeedDataset: Branches, suppliers, users and products.
    """
    as_of = as_of or date.today()
    rng = random.Random(seed)
    return SeedDataset(
        branches=[Branch(id=bid, name=name) for bid, name in BRANCHES],
        suppliers=[
            Supplier(id=sid, name=name, contact_email=email, quick_reorder_enabled=quick)
            for sid, name, email, quick in SUPPLIERS
        ],
        users=[
            User(id=uid, name=name, username=username, role=role, branch_id=branch_id)
            for uid, name, username, role, branch_id in USERS
        ],
        products=[_product(rng, entry, as_of, days) for entry in PRODUCTS],
    )

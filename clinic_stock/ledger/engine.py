"""Stock ledger engine.

Pure transformations over frozen ``Product`` values. Every operation
returns a new product and leaves its input untouched; a raised error means
nothing changed. Persisting and auditing the result is the caller's job.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import Callable, Iterable, List, Optional, Tuple, Union

from clinic_stock.data.models import (
    Batch,
    Branch,
    ExpiringBatch,
    Product,
    StockLevel,
)
from clinic_stock.errors import InsufficientStock, InvalidQuantity, InvalidTransfer
from clinic_stock.logging import get_logger

logger = get_logger(__name__)


class ConsumptionPolicy(str, Enum):
    FEFO = "FEFO"  # soonest expiry first, non-expiring last
    FIFO = "FIFO"  # oldest receipt first


@dataclass(frozen=True)
class BatchDraw:
    """Units taken from one batch by a consume."""
    batch_id: str
    quantity: int
    expiry_date: Optional[date]


# ---------- helpers ----------

def _is_positive_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def _new_batch_id(factory: Optional[Callable[[], str]]) -> str:
    return factory() if factory else str(uuid.uuid4())


def _with_level(product: Product, level: StockLevel) -> Product:
    """Return ``product`` with the stock level for ``level.branch_id`` replaced (or appended)."""
    levels = list(product.stock_levels)
    for i, existing in enumerate(levels):
        if existing.branch_id == level.branch_id:
            levels[i] = level
            break
    else:
        levels.append(level)
    return product.model_copy(update={"stock_levels": levels})


def _fefo_key(batch: Batch):
    return (batch.expiry_date is None, batch.expiry_date or date.max, batch.date_received, batch.batch_id)


def _fifo_key(batch: Batch):
    return (batch.date_received, batch.expiry_date is None, batch.expiry_date or date.max, batch.batch_id)


def sorted_fefo(batches: Iterable[Batch]) -> List[Batch]:
    """Order batches First-Expired-First-Out.

    Expiring batches come first by expiry date, non-expiring batches last;
    ties are broken by receipt date, then batch id.
    """
    return sorted(batches, key=_fefo_key)


def _ordered(batches: Iterable[Batch], policy: ConsumptionPolicy) -> List[Batch]:
    if policy == ConsumptionPolicy.FIFO:
        return sorted(batches, key=_fifo_key)
    return sorted_fefo(batches)


# ---------- aggregates ----------

def total_stock(target: Union[StockLevel, Product]) -> int:
    """Units held in a stock level, or across every branch of a product."""
    if isinstance(target, StockLevel):
        return target.total
    return sum(level.total for level in target.stock_levels)


def branch_total(product: Product, branch_id: str) -> int:
    level = product.stock_level(branch_id)
    return level.total if level else 0


def expiring_within(
    products: Iterable[Product],
    branches: Iterable[Branch],
    horizon_days: int,
    as_of: Optional[date] = None,
    urgent_days: int = 7,
) -> List[ExpiringBatch]:
    """List every batch expiring between ``as_of`` and ``as_of + horizon_days`` inclusive.

    Args:
        products: Products to scan.
        branches: Branches used to resolve display names.
        horizon_days: Size of the look-ahead window in days.
        as_of: Reference date. Defaults to today.
        urgent_days: Batches expiring within this many days are flagged urgent.
    Returns:
        List[ExpiringBatch]: Sorted by days until expiry, soonest first.
    """
    as_of = as_of or date.today()
    horizon_end = as_of + timedelta(days=horizon_days)
    branch_names = {b.id: b.name for b in branches}

    found: List[ExpiringBatch] = []
    for product in products:
        for level in product.stock_levels:
            for batch in level.batches:
                if batch.expiry_date is None:
                    continue
                if not (as_of <= batch.expiry_date <= horizon_end):
                    continue
                days = max(0, (batch.expiry_date - as_of).days)
                found.append(ExpiringBatch(
                    product_id=product.id,
                    product_name=product.name,
                    branch_id=level.branch_id,
                    branch_name=branch_names.get(level.branch_id, level.branch_id),
                    batch_id=batch.batch_id,
                    quantity=batch.quantity,
                    expiry_date=batch.expiry_date,
                    days_until_expiry=days,
                    is_urgent=days <= urgent_days,
                ))
    found.sort(key=lambda e: (e.days_until_expiry, e.product_name, e.branch_name))
    return found


# ---------- mutations ----------

def receive(
    product: Product,
    branch_id: str,
    quantity: int,
    expiry_date: Optional[date] = None,
    received_date: Optional[date] = None,
    batch_id_factory: Optional[Callable[[], str]] = None,
) -> Product:
    """Receive ``quantity`` units into ``branch_id``.

    A batch with the same (expiry date, receipt date) pair absorbs the
    quantity; otherwise a new batch is created.
    """
    if not _is_positive_int(quantity):
        raise InvalidQuantity(f"Received quantity must be a positive integer, got {quantity!r}")

    received_date = received_date or date.today()
    level = product.stock_level(branch_id) or StockLevel(branch_id=branch_id)
    batches = list(level.batches)

    for i, batch in enumerate(batches):
        if batch.expiry_date == expiry_date and batch.date_received == received_date:
            batches[i] = batch.model_copy(update={"quantity": batch.quantity + quantity})
            logger.debug(f"Merged {quantity} units into batch {batch.batch_id} of {product.id} at {branch_id}")
            break
    else:
        new_batch = Batch(
            batch_id=_new_batch_id(batch_id_factory),
            quantity=quantity,
            expiry_date=expiry_date,
            date_received=received_date,
        )
        batches.append(new_batch)
        logger.debug(f"Created batch {new_batch.batch_id} ({quantity} units) of {product.id} at {branch_id}")

    return _with_level(product, level.model_copy(update={"batches": batches}))


def consume(
    product: Product,
    branch_id: str,
    quantity: int,
    policy: ConsumptionPolicy = ConsumptionPolicy.FEFO,
) -> Tuple[Product, List[BatchDraw]]:
    """Take ``quantity`` units out of ``branch_id`` following ``policy``.

    Returns:
        Tuple[Product, List[BatchDraw]]: The new product and the per-batch draws, in draw order.
    Raises:
        InvalidQuantity: If quantity is not a positive integer.
        InsufficientStock: If the branch holds fewer than ``quantity`` units.
    """
    if not _is_positive_int(quantity):
        raise InvalidQuantity(f"Used quantity must be a positive integer, got {quantity!r}")

    level = product.stock_level(branch_id)
    available = level.total if level else 0
    if quantity > available:
        logger.warning(f"Rejected use of {quantity} units of {product.id} at {branch_id} ({available} available)")
        raise InsufficientStock(product.id, branch_id, quantity, available)

    remaining = quantity
    kept: List[Batch] = []
    draws: List[BatchDraw] = []
    for batch in _ordered(level.batches, policy):
        take = min(remaining, batch.quantity)
        if take:
            remaining -= take
            draws.append(BatchDraw(batch_id=batch.batch_id, quantity=take, expiry_date=batch.expiry_date))
        left = batch.quantity - take
        if left > 0:
            kept.append(batch if take == 0 else batch.model_copy(update={"quantity": left}))

    logger.debug(f"Used {quantity} units of {product.id} at {branch_id} from {len(draws)} batch(es)")
    return _with_level(product, level.model_copy(update={"batches": kept})), draws


def transfer(
    product: Product,
    from_branch_id: str,
    to_branch_id: str,
    batch_id: str,
    amount: int,
    transfer_date: Optional[date] = None,
    batch_id_factory: Optional[Callable[[], str]] = None,
) -> Product:
    """Move ``amount`` units of one batch from one branch to another.

    At the destination the units join a batch with the same expiry date, or
    start a new batch carrying the source expiry and ``transfer_date`` as its
    receipt date. Total units across branches are unchanged.
    """
    if from_branch_id == to_branch_id:
        raise InvalidTransfer("Cannot transfer to the same branch.")
    if not _is_positive_int(amount):
        raise InvalidTransfer(f"Transfer amount must be a positive integer, got {amount!r}")

    source_level = product.stock_level(from_branch_id)
    source_batch = source_level.find_batch(batch_id) if source_level else None
    if source_batch is None:
        raise InvalidTransfer(f"Batch {batch_id} not found at branch {from_branch_id}.")
    if amount > source_batch.quantity:
        raise InvalidTransfer(
            f"Cannot transfer more than available in the selected batch ({source_batch.quantity})."
        )

    source_batches = []
    for batch in source_level.batches:
        if batch.batch_id != batch_id:
            source_batches.append(batch)
        elif batch.quantity > amount:
            source_batches.append(batch.model_copy(update={"quantity": batch.quantity - amount}))

    dest_level = product.stock_level(to_branch_id) or StockLevel(branch_id=to_branch_id)
    dest_batches = list(dest_level.batches)
    for i, batch in enumerate(dest_batches):
        if batch.expiry_date == source_batch.expiry_date:
            dest_batches[i] = batch.model_copy(update={"quantity": batch.quantity + amount})
            break
    else:
        dest_batches.append(Batch(
            batch_id=_new_batch_id(batch_id_factory),
            quantity=amount,
            expiry_date=source_batch.expiry_date,
            date_received=transfer_date or date.today(),
        ))

    updated = _with_level(product, source_level.model_copy(update={"batches": source_batches}))
    updated = _with_level(updated, dest_level.model_copy(update={"batches": dest_batches}))
    logger.debug(f"Transferred {amount} units of {product.id} batch {batch_id} from {from_branch_id} to {to_branch_id}")
    return updated


def adjust_to(
    product: Product,
    branch_id: str,
    new_total: int,
    expiry_date: Optional[date] = None,
    received_date: Optional[date] = None,
) -> Tuple[Product, int]:
    """Set the branch total to ``new_total`` (cycle count correction).

    A surplus is received as a batch, a deficit is used FEFO.

    Returns:
        Tuple[Product, int]: The new product and the signed change in units.
    """
    if not isinstance(new_total, int) or isinstance(new_total, bool) or new_total < 0:
        raise InvalidQuantity(f"Stock level must be a non-negative integer, got {new_total!r}")

    delta = new_total - branch_total(product, branch_id)
    if delta > 0:
        return receive(product, branch_id, delta, expiry_date=expiry_date, received_date=received_date), delta
    if delta < 0:
        updated, _ = consume(product, branch_id, -delta)
        return updated, delta
    return product, 0

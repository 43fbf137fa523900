from .engine import (
    BatchDraw,
    ConsumptionPolicy,
    adjust_to,
    branch_total,
    consume,
    expiring_within,
    receive,
    sorted_fefo,
    total_stock,
    transfer,
)

__all__ = [
    "BatchDraw",
    "ConsumptionPolicy",
    "adjust_to",
    "branch_total",
    "consume",
    "expiring_within",
    "receive",
    "sorted_fefo",
    "total_stock",
    "transfer",
]

"""Delivery: scheduling, item storage, next-item selection."""

from .item_store import ItemStore
from .scheduler import (
    IntervalConfig,
    ItemState,
    ItemStatus,
    ReportedAction,
    SchedulingEngine,
)
from .selector import DeliveryKind, DeliverySelector
from .service import WordbankService

__all__ = [
    "DeliveryKind",
    "DeliverySelector",
    "IntervalConfig",
    "ItemState",
    "ItemStatus",
    "ItemStore",
    "ReportedAction",
    "SchedulingEngine",
    "WordbankService",
]
